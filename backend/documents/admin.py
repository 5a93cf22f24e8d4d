from django.contrib import admin
from .models import Document, Issuer, VerificationLog


@admin.register(Issuer)
class IssuerAdmin(admin.ModelAdmin):
    list_display = ('organization_name', 'type', 'status', 'created_at', 'approved_at')
    list_filter = ('type', 'status')
    search_fields = ('organization_name', 'user_id')
    readonly_fields = ('created_at',)


@admin.register(Document)
class DocumentAdmin(admin.ModelAdmin):
    list_display = ('id_short', 'title', 'issuer_name', 'recipient_name', 'status', 'issued_at')
    list_filter = ('status', 'document_type', 'issued_at')
    search_fields = ('id', 'title', 'issuer_name', 'recipient_name', 'recipient_email', 'hash')
    # Identity, content hash and links are fixed at issuance
    readonly_fields = (
        'id', 'issuer_id', 'issuer_name', 'hash', 'issued_at',
        'verification_url', 'document_url', 'original_file_name',
        'status', 'revoked_at', 'revoked_by', 'revoked_reason'
    )
    exclude = ('qr_code_data',)
    fieldsets = (
        ('Document Info', {
            'fields': ('id', 'title', 'description', 'document_type', 'original_file_name')
        }),
        ('Issuer & Recipient', {
            'fields': ('issuer_id', 'issuer_name', 'recipient_name', 'recipient_email')
        }),
        ('Integrity', {
            'fields': ('hash', 'verification_url', 'document_url')
        }),
        ('Status', {
            'fields': ('status', 'issued_at', 'revoked_at', 'revoked_by', 'revoked_reason')
        }),
    )

    def id_short(self, obj):
        """Display shortened identifier."""
        return f"{obj.id[:20]}..."
    id_short.short_description = 'Identifier'


@admin.register(VerificationLog)
class VerificationLogAdmin(admin.ModelAdmin):
    list_display = ('document_id', 'result', 'method', 'timestamp', 'ip_address')
    list_filter = ('result', 'method', 'timestamp')
    search_fields = ('document_id', 'ip_address')
    readonly_fields = ('document_id', 'timestamp', 'result', 'method', 'ip_address', 'user_agent')

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False
