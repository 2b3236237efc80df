import django.db.models.deletion
from django.db import migrations, models

import uploads.models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Item',
            fields=[
                ('id', models.CharField(default=uploads.models.generate_nanoid, editable=False, max_length=21, primary_key=True, serialize=False)),
                ('type', models.CharField(choices=[('IMAGE', 'Image'), ('VIDEO', 'Video'), ('GIF', 'GIF')], max_length=10)),
                ('post_id', models.CharField(blank=True, db_index=True, max_length=100)),
                ('caption', models.TextField(blank=True)),
                ('description', models.TextField(blank=True)),
                ('original_path', models.CharField(max_length=500)),
                ('compressed_path', models.CharField(max_length=500)),
                ('thumbnail_path', models.CharField(max_length=500)),
                ('rel_height', models.FloatField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='TaskRecord',
            fields=[
                ('id', models.CharField(default=uploads.models.generate_nanoid, editable=False, max_length=21, primary_key=True, serialize=False)),
                ('status', models.CharField(choices=[('QUEUED', 'Queued'), ('PROCESSING', 'Processing'), ('DONE', 'Done'), ('FAILED', 'Failed')], db_index=True, default='QUEUED', max_length=20)),
                ('progress', models.PositiveSmallIntegerField(default=0)),
                ('notes', models.TextField(blank=True)),
                ('source_extension', models.CharField(max_length=20)),
                ('source_mime_type', models.CharField(max_length=100)),
                ('source_kind', models.CharField(choices=[('image', 'Image'), ('video', 'Video')], max_length=10)),
                ('requested_type', models.CharField(choices=[('AUTO', 'Auto'), ('IMAGE', 'Image'), ('VIDEO', 'Video'), ('GIF', 'GIF')], default='AUTO', max_length=10)),
                ('target_type', models.CharField(blank=True, choices=[('IMAGE', 'Image'), ('VIDEO', 'Video'), ('GIF', 'GIF')], max_length=10)),
                ('payload', models.JSONField(blank=True, default=dict)),
                ('cancel_requested', models.BooleanField(default=False)),
                ('started_at', models.DateTimeField(blank=True, null=True)),
                ('finished_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('created_item', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='tasks', to='uploads.item')),
                ('retry_of', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='retries', to='uploads.taskrecord')),
            ],
            options={
                'ordering': ['-created_at'],
                'indexes': [models.Index(fields=['status', 'created_at'], name='uploads_task_status_idx')],
            },
        ),
    ]
