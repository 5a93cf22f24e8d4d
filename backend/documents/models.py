from django.db import models
from django.utils import timezone


class Issuer(models.Model):
    """
    Organization authorized to issue documents.
    The approval workflow lives outside this service; only `status` is read here.
    """
    TYPE_CHOICES = [
        ('education', 'Education'),
        ('healthcare', 'Healthcare'),
    ]

    STATUS_PENDING = 'pending'
    STATUS_VERIFIED = 'verified'
    STATUS_REJECTED = 'rejected'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending approval'),
        (STATUS_VERIFIED, 'Verified'),
        (STATUS_REJECTED, 'Rejected'),
    ]

    id = models.CharField(max_length=64, primary_key=True)
    user_id = models.CharField(max_length=128, db_index=True)
    organization_name = models.CharField(max_length=255)
    type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='education')
    description = models.TextField(blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    created_at = models.DateTimeField(default=timezone.now)
    approved_at = models.DateTimeField(null=True, blank=True)
    approved_by = models.CharField(max_length=128, blank=True, null=True)

    class Meta:
        ordering = ['organization_name']

    def __str__(self):
        return self.organization_name

    @property
    def is_verified(self):
        return self.status == self.STATUS_VERIFIED


class Document(models.Model):
    """
    An issued, verifiable document.

    Issuer identity and descriptive metadata are copied at issuance time and
    never change afterwards. `hash` is the SHA256 of the stamped PDF exactly
    as it was uploaded to blob storage. The only mutation after creation is
    the active -> revoked transition.
    """
    STATUS_ACTIVE = 'active'
    STATUS_REVOKED = 'revoked'
    STATUS_CHOICES = [
        (STATUS_ACTIVE, 'Active'),
        (STATUS_REVOKED, 'Revoked'),
    ]

    id = models.CharField(max_length=64, primary_key=True)

    issuer_id = models.CharField(max_length=64, db_index=True)
    issuer_name = models.CharField(max_length=255)

    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    document_type = models.CharField(max_length=100, blank=True)
    recipient_name = models.CharField(max_length=255, blank=True)
    recipient_email = models.EmailField(blank=True)

    hash = models.CharField(
        max_length=64,
        db_index=True,
        help_text="SHA256 hash of the stamped PDF file"
    )
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_ACTIVE)

    issued_at = models.DateTimeField(default=timezone.now)
    revoked_at = models.DateTimeField(null=True, blank=True)
    revoked_by = models.CharField(max_length=128, blank=True, null=True)
    revoked_reason = models.TextField(blank=True, null=True)

    verification_url = models.CharField(max_length=500)
    qr_code_data = models.TextField(
        blank=True,
        help_text="PNG data URI of the verification QR code (display only)"
    )
    document_url = models.CharField(
        max_length=500,
        help_text="Retrievable location of the stamped PDF"
    )
    original_file_name = models.CharField(max_length=255, blank=True)

    class Meta:
        ordering = ['-issued_at']
        indexes = [
            models.Index(fields=['issuer_id', 'issued_at'], name='documents_d_issuer__5b1c2e_idx'),
            models.Index(fields=['status', 'issued_at'], name='documents_d_status_8f3a4d_idx'),
        ]

    def __str__(self):
        return f"{self.title} ({self.id})"

    @property
    def is_active(self):
        return self.status == self.STATUS_ACTIVE

    def derive_verification_url(self, origin):
        """Rebuild the verification URL from the identifier alone."""
        from .services.identifiers import derive_verification_url
        return derive_verification_url(self.id, origin)


class VerificationLog(models.Model):
    """
    Append-only audit trail: one row per verification attempt.
    `document_id` holds whatever identifier was attempted, so it may not
    reference an existing Document.
    """
    RESULT_VALID = 'valid'
    RESULT_INVALID = 'invalid'
    RESULT_REVOKED = 'revoked'
    RESULT_CHOICES = [
        (RESULT_VALID, 'Valid'),
        (RESULT_INVALID, 'Invalid'),
        (RESULT_REVOKED, 'Revoked'),
    ]

    METHOD_IDENTIFIER = 'identifier'
    METHOD_UPLOAD = 'upload'
    METHOD_SCAN = 'scan'
    METHOD_CHOICES = [
        (METHOD_IDENTIFIER, 'Identifier / link'),
        (METHOD_UPLOAD, 'File upload'),
        (METHOD_SCAN, 'QR scan'),
    ]

    document_id = models.CharField(max_length=255, db_index=True)
    timestamp = models.DateTimeField(default=timezone.now, db_index=True)
    result = models.CharField(max_length=10, choices=RESULT_CHOICES, db_index=True)
    method = models.CharField(max_length=20, choices=METHOD_CHOICES, default=METHOD_IDENTIFIER)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.TextField(blank=True)

    class Meta:
        ordering = ['-timestamp']

    def __str__(self):
        return f"{self.document_id} -> {self.result} at {self.timestamp}"
