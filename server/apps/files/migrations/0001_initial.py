import uuid

from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='File',
            fields=[
                ('file_id', models.UUIDField(editable=False, help_text='Generated at reservation time', primary_key=True, serialize=False)),
                ('owner_id', models.CharField(help_text='Identity of the uploading user', max_length=128)),
                ('file_name', models.CharField(max_length=255)),
                ('file_type', models.CharField(help_text='MIME type declared by the client at upload', max_length=255)),
                ('file_size', models.BigIntegerField(help_text='File size in bytes declared at upload')),
                ('folder', models.CharField(blank=True, default='', help_text='Logical folder path, empty for root', max_length=512)),
                ('storage_key', models.CharField(help_text='Object key: {owner_id}/{folder}/{file_id}-{file_name}', max_length=1024, unique=True)),
                ('is_deleted', models.BooleanField(default=False)),
                ('version', models.PositiveIntegerField(default=1)),
                ('created_at', models.DateTimeField()),
                ('updated_at', models.DateTimeField()),
            ],
            options={
                'verbose_name': 'File',
                'verbose_name_plural': 'Files',
                'ordering': ['-created_at', '-file_id'],
                'base_manager_name': 'all_objects',
                'default_manager_name': 'all_objects',
                'indexes': [
                    models.Index(fields=['owner_id', 'is_deleted', '-created_at', '-file_id'], name='files_owner_recent_idx'),
                    models.Index(fields=['folder', 'is_deleted', '-created_at', '-file_id'], name='files_folder_recent_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(file_size__gte=0), name='files_size_non_negative'),
                ],
            },
        ),
        migrations.CreateModel(
            name='UploadReservation',
            fields=[
                ('file_id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('owner_id', models.CharField(max_length=128)),
                ('storage_key', models.CharField(max_length=1024, unique=True)),
                ('expires_at', models.DateTimeField(db_index=True)),
                ('confirmed_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'verbose_name': 'Upload reservation',
                'verbose_name_plural': 'Upload reservations',
                'ordering': ['-created_at'],
            },
        ),
    ]
