from rest_framework import serializers

from .models import Document, Issuer, VerificationLog


class DocumentSerializer(serializers.ModelSerializer):
    """Full Document representation for the issuer API."""

    class Meta:
        model = Document
        fields = [
            'id', 'issuer_id', 'issuer_name', 'title', 'description',
            'document_type', 'recipient_name', 'recipient_email',
            'hash', 'status', 'issued_at', 'revoked_at', 'revoked_by',
            'revoked_reason', 'verification_url', 'qr_code_data',
            'document_url', 'original_file_name'
        ]
        read_only_fields = fields


class PublicDocumentSerializer(serializers.ModelSerializer):
    """What an anonymous verifier gets to see about a document."""

    class Meta:
        model = Document
        fields = [
            'id', 'issuer_name', 'title', 'description', 'document_type',
            'recipient_name', 'hash', 'status', 'issued_at', 'revoked_at',
            'revoked_reason', 'verification_url', 'document_url'
        ]
        read_only_fields = fields


class IssueDocumentSerializer(serializers.Serializer):
    """Multipart payload for issuing a document."""
    issuer_id = serializers.CharField(max_length=64)
    file = serializers.FileField()
    title = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True, default='')
    document_type = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    recipient_name = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')
    recipient_email = serializers.EmailField(required=False, allow_blank=True, default='')

    def validate_title(self, value):
        if not value.strip():
            raise serializers.ValidationError('Title must not be blank')
        return value.strip()

    def validate_file(self, value):
        """Only PDFs can be stamped; reject other uploads early."""
        name = (value.name or '').lower()
        content_type = getattr(value, 'content_type', '') or ''
        if not name.endswith('.pdf') and content_type != 'application/pdf':
            raise serializers.ValidationError('Please select a PDF file')
        return value

    def validate_issuer_id(self, value):
        if not Issuer.objects.filter(pk=value).exists():
            raise serializers.ValidationError('Unknown issuer')
        return value


class RevokeDocumentSerializer(serializers.Serializer):
    actor_id = serializers.CharField(max_length=128)
    reason = serializers.CharField(required=False, allow_blank=True, allow_null=True)

    def validate_reason(self, value):
        # Blank means no reason given
        return value.strip() if value and value.strip() else None


class UploadVerificationSerializer(serializers.Serializer):
    file = serializers.FileField()


class ScanVerificationSerializer(serializers.Serializer):
    payload = serializers.CharField(trim_whitespace=False, allow_blank=True)


class VerificationResultSerializer(serializers.Serializer):
    """Serialize a Resolution for the public verification endpoints."""
    valid = serializers.BooleanField(source='is_valid')
    verdict = serializers.CharField()
    matched_by = serializers.CharField(allow_null=True)
    message = serializers.CharField()
    document = PublicDocumentSerializer(allow_null=True)


class VerificationLogSerializer(serializers.ModelSerializer):

    class Meta:
        model = VerificationLog
        fields = ['id', 'document_id', 'timestamp', 'result', 'method', 'ip_address', 'user_agent']
        read_only_fields = fields
