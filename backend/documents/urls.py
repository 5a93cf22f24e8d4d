"""
backend/documents/urls.py

"""

# ----------------------------
# Django imports
# ----------------------------
from django.urls import path

# ----------------------------
# Local view imports
# ----------------------------
from .views import (
    DocumentViewSet,
    PublicVerifyView,
    PublicVerifyUploadView,
    PublicVerifyScanView
)

# App namespace for reverse() lookups
app_name = 'documents'

# ----------------------------
# Issuer document routes (mounted under api/documents/)
# ----------------------------
urlpatterns = [
    path('', DocumentViewSet.as_view({
        'get': 'list'
    }), name='document-list'),
    # Issuer feed: ?issuer_id=<id>, newest first (paginated).

    # Issue MUST come before the <str:pk>/ detail route
    path('issue/', DocumentViewSet.as_view({
        'post': 'issue'
    }), name='document-issue'),
    # Multipart upload of the PDF plus metadata. Stamps the QR code, hashes the
    # stamped bytes, stores the file and records the Document.

    path('<str:pk>/', DocumentViewSet.as_view({
        'get': 'retrieve'
    }), name='document-detail'),
    # Full document record including hash, QR data URI and stored file URL.

    path('<str:pk>/revoke/', DocumentViewSet.as_view({
        'post': 'revoke'
    }), name='document-revoke'),
    # active -> revoked. 409 when already revoked; the first revocation is kept.

    path('<str:pk>/verifications/', DocumentViewSet.as_view({
        'get': 'verifications'
    }), name='document-verifications'),
    # Audit trail of verification attempts against this identifier.
]

# ----------------------------
# Public verification routes (mounted at the site root, no auth, throttled)
# ----------------------------
public_urlpatterns = [
    path('verify', PublicVerifyView.as_view(), name='public-verify'),
    # GET /verify?id=<identifier>. This exact URL is printed on every stamped
    # PDF and encoded in its QR code.

    path('verify/upload/', PublicVerifyUploadView.as_view(), name='public-verify-upload'),
    # Multipart `file`: embedded identifier first, content hash second.

    path('verify/scan/', PublicVerifyScanView.as_view(), name='public-verify-scan'),
    # `payload`: decoded text of a scanned QR code (URL or bare identifier).
]
