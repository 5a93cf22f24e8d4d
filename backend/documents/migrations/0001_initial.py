from django.db import migrations, models
import django.utils.timezone


class Migration(migrations.Migration):

    initial = True

    dependencies = [
    ]

    operations = [
        migrations.CreateModel(
            name='Issuer',
            fields=[
                ('id', models.CharField(max_length=64, primary_key=True, serialize=False)),
                ('user_id', models.CharField(db_index=True, max_length=128)),
                ('organization_name', models.CharField(max_length=255)),
                ('type', models.CharField(choices=[('education', 'Education'), ('healthcare', 'Healthcare')], default='education', max_length=20)),
                ('description', models.TextField(blank=True)),
                ('status', models.CharField(choices=[('pending', 'Pending approval'), ('verified', 'Verified'), ('rejected', 'Rejected')], default='pending', max_length=20)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('approved_at', models.DateTimeField(blank=True, null=True)),
                ('approved_by', models.CharField(blank=True, max_length=128, null=True)),
            ],
            options={
                'ordering': ['organization_name'],
            },
        ),
        migrations.CreateModel(
            name='Document',
            fields=[
                ('id', models.CharField(max_length=64, primary_key=True, serialize=False)),
                ('issuer_id', models.CharField(db_index=True, max_length=64)),
                ('issuer_name', models.CharField(max_length=255)),
                ('title', models.CharField(max_length=255)),
                ('description', models.TextField(blank=True)),
                ('document_type', models.CharField(blank=True, max_length=100)),
                ('recipient_name', models.CharField(blank=True, max_length=255)),
                ('recipient_email', models.EmailField(blank=True, max_length=254)),
                ('hash', models.CharField(db_index=True, help_text='SHA256 hash of the stamped PDF file', max_length=64)),
                ('status', models.CharField(choices=[('active', 'Active'), ('revoked', 'Revoked')], default='active', max_length=10)),
                ('issued_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('revoked_at', models.DateTimeField(blank=True, null=True)),
                ('revoked_by', models.CharField(blank=True, max_length=128, null=True)),
                ('revoked_reason', models.TextField(blank=True, null=True)),
                ('verification_url', models.CharField(max_length=500)),
                ('qr_code_data', models.TextField(blank=True, help_text='PNG data URI of the verification QR code (display only)')),
                ('document_url', models.CharField(help_text='Retrievable location of the stamped PDF', max_length=500)),
                ('original_file_name', models.CharField(blank=True, max_length=255)),
            ],
            options={
                'ordering': ['-issued_at'],
                'indexes': [
                    models.Index(fields=['issuer_id', 'issued_at'], name='documents_d_issuer__5b1c2e_idx'),
                    models.Index(fields=['status', 'issued_at'], name='documents_d_status_8f3a4d_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='VerificationLog',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('document_id', models.CharField(db_index=True, max_length=255)),
                ('timestamp', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ('result', models.CharField(choices=[('valid', 'Valid'), ('invalid', 'Invalid'), ('revoked', 'Revoked')], db_index=True, max_length=10)),
                ('method', models.CharField(choices=[('identifier', 'Identifier / link'), ('upload', 'File upload'), ('scan', 'QR scan')], default='identifier', max_length=20)),
                ('ip_address', models.GenericIPAddressField(blank=True, null=True)),
                ('user_agent', models.TextField(blank=True)),
            ],
            options={
                'ordering': ['-timestamp'],
            },
        ),
    ]
