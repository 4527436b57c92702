import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
    ]

    operations = [
        migrations.CreateModel(
            name='Agent',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=100)),
                ('agent_type', models.CharField(db_index=True, max_length=50)),
                ('status', models.CharField(choices=[('active', 'Active'), ('inactive', 'Inactive'), ('maintenance', 'Maintenance')], default='active', max_length=20)),
                ('tagline', models.CharField(blank=True, default='', max_length=255)),
                ('description', models.TextField(blank=True, default='')),
                ('personality_traits', models.JSONField(blank=True, default=dict)),
                ('capabilities', models.JSONField(blank=True, default=list)),
                ('specializations', models.JSONField(blank=True, default=list)),
                ('configuration', models.JSONField(blank=True, default=dict)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'ordering': ['agent_type', '-updated_at'],
                'indexes': [models.Index(fields=['agent_type', 'status'], name='agents_agen_agent_t_4c1f2a_idx')],
            },
        ),
        migrations.CreateModel(
            name='AgentMemory',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('owner_type', models.CharField(db_index=True, max_length=50)),
                ('owner_id', models.CharField(max_length=100)),
                ('category', models.CharField(choices=[('conversation', 'Conversation'), ('preference', 'Preference'), ('knowledge', 'Knowledge')], max_length=30)),
                ('name', models.CharField(max_length=255)),
                ('content', models.JSONField(default=dict)),
                ('importance_score', models.FloatField(default=1.0)),
                ('expires_at', models.DateTimeField(blank=True, db_index=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('agent', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name='memories', to='agents.agent')),
            ],
            options={
                'verbose_name_plural': 'Agent memories',
                'ordering': ['-created_at'],
                'indexes': [models.Index(fields=['owner_type', 'category', 'name'], name='agents_agen_owner_t_9b3e7d_idx')],
            },
        ),
    ]
