import logging

from django.shortcuts import get_object_or_404
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.pagination import PageNumberPagination
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from .models import Issuer, VerificationLog
from .serializers import (
    DocumentSerializer, IssueDocumentSerializer, RevokeDocumentSerializer,
    ScanVerificationSerializer, UploadVerificationSerializer,
    VerificationLogSerializer, VerificationResultSerializer
)
from .services import get_issuance_service, get_revocation_service, get_verification_resolver
from .services.exceptions import (
    AlreadyRevoked, DocumentNotFound, DocumentStoreError, DuplicateIdentifier,
    InvalidTransition, IssuerNotVerified, MalformedDocument, UploadFailure
)
from .services.issuance import IssueMetadata
from .throttles import PublicVerifyRateThrottle

logger = logging.getLogger(__name__)

# Issuance and revocation errors -> HTTP status
ERROR_STATUS = (
    (MalformedDocument, status.HTTP_400_BAD_REQUEST),
    (IssuerNotVerified, status.HTTP_403_FORBIDDEN),
    (DocumentNotFound, status.HTTP_404_NOT_FOUND),
    (AlreadyRevoked, status.HTTP_409_CONFLICT),
    (InvalidTransition, status.HTTP_409_CONFLICT),
    (DuplicateIdentifier, status.HTTP_409_CONFLICT),
    (UploadFailure, status.HTTP_502_BAD_GATEWAY),
    (DocumentStoreError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def error_response(exc):
    for exc_class, http_status in ERROR_STATUS:
        if isinstance(exc, exc_class):
            return Response({'error': exc.message}, status=http_status)
    raise exc


def get_client_ip(request):
    """Extract client IP from request, honouring the first X-Forwarded-For hop."""
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        ip = x_forwarded_for.split(',')[0].strip()
    else:
        ip = request.META.get('REMOTE_ADDR')
    return ip or None


class StandardResultsSetPagination(PageNumberPagination):
    page_size = 50
    page_size_query_param = 'page_size'
    max_page_size = 1000


class DocumentViewSet(viewsets.GenericViewSet):
    """Issuer-facing document API: issue, list, detail and revoke."""
    serializer_class = DocumentSerializer
    pagination_class = StandardResultsSetPagination
    parser_classes = (JSONParser, FormParser, MultiPartParser)

    def list(self, request):
        """List an issuer's documents, newest first."""
        issuer_id = request.query_params.get('issuer_id')
        if not issuer_id:
            return Response(
                {'error': 'issuer_id is required'},
                status=status.HTTP_400_BAD_REQUEST
            )

        documents = get_issuance_service().list_for_issuer(issuer_id)
        page = self.paginate_queryset(documents)
        if page is not None:
            serializer = DocumentSerializer(page, many=True)
            return self.get_paginated_response(serializer.data)
        return Response(DocumentSerializer(documents, many=True).data)

    def retrieve(self, request, pk=None):
        try:
            document = get_issuance_service().get_document(pk)
        except (DocumentNotFound, DocumentStoreError) as e:
            return error_response(e)
        return Response(DocumentSerializer(document).data)

    @action(detail=False, methods=['post'], parser_classes=(MultiPartParser, FormParser))
    def issue(self, request):
        """
        Stamp, hash, upload and record an uploaded PDF.

        The form input is echoed back on failure so the client can keep it.
        """
        serializer = IssueDocumentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        issuer = get_object_or_404(Issuer, pk=data['issuer_id'])
        upload = data['file']
        metadata = IssueMetadata(
            title=data['title'],
            description=data['description'],
            document_type=data['document_type'],
            recipient_name=data['recipient_name'],
            recipient_email=data['recipient_email'],
            original_file_name=upload.name,
        )

        try:
            document = get_issuance_service().issue(issuer, upload.read(), metadata)
        except (MalformedDocument, IssuerNotVerified, UploadFailure,
                DuplicateIdentifier, DocumentStoreError) as e:
            logger.warning(f"Issuance for issuer {issuer.id} failed: {e.message}")
            response = error_response(e)
            response.data['form'] = {
                key: value for key, value in data.items() if key != 'file'
            }
            return response

        return Response(DocumentSerializer(document).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'])
    def revoke(self, request, pk=None):
        """Revoke an active document. Revoking twice is reported, not applied."""
        serializer = RevokeDocumentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            document = get_revocation_service().revoke(
                pk,
                serializer.validated_data['actor_id'],
                serializer.validated_data.get('reason')
            )
        except AlreadyRevoked as e:
            return Response(
                {'error': e.message, 'document': DocumentSerializer(e.document).data},
                status=status.HTTP_409_CONFLICT
            )
        except (DocumentNotFound, InvalidTransition, DocumentStoreError) as e:
            return error_response(e)

        return Response(DocumentSerializer(document).data)

    @action(detail=True, methods=['get'])
    def verifications(self, request, pk=None):
        """Verification attempts recorded against this identifier."""
        logs = VerificationLog.objects.filter(document_id=pk).order_by('-timestamp')
        page = self.paginate_queryset(logs)
        if page is not None:
            return self.get_paginated_response(VerificationLogSerializer(page, many=True).data)
        return Response(VerificationLogSerializer(logs, many=True).data)


class PublicVerificationView(APIView):
    """
    Base for the anonymous verification endpoints.

    Always answers 200 with a definitive verdict; a missing document is a
    verdict, not an error.
    """
    authentication_classes = []
    permission_classes = [AllowAny]
    throttle_classes = [PublicVerifyRateThrottle]

    def client_details(self, request):
        return {
            'ip_address': get_client_ip(request),
            'user_agent': str(request.META.get('HTTP_USER_AGENT') or '')[:512],
        }

    def verification_response(self, resolution):
        return Response(VerificationResultSerializer(resolution).data)


class PublicVerifyView(PublicVerificationView):
    """GET /verify?id=<identifier>, the URL embedded in every stamp."""

    def get(self, request, format=None):
        resolution = get_verification_resolver().resolve(
            request.query_params.get('id', ''),
            method=VerificationLog.METHOD_IDENTIFIER,
            **self.client_details(request)
        )
        return self.verification_response(resolution)


class PublicVerifyUploadView(PublicVerificationView):
    """Verify an uploaded copy: embedded identifier first, then content hash."""
    parser_classes = (MultiPartParser, FormParser)

    def post(self, request, format=None):
        serializer = UploadVerificationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        resolution = get_verification_resolver().resolve(
            content=serializer.validated_data['file'].read(),
            method=VerificationLog.METHOD_UPLOAD,
            **self.client_details(request)
        )
        return self.verification_response(resolution)


class PublicVerifyScanView(PublicVerificationView):
    """Verify the decoded text of a scanned QR code."""

    def post(self, request, format=None):
        serializer = ScanVerificationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        resolution = get_verification_resolver().resolve_scan(
            serializer.validated_data['payload'],
            **self.client_details(request)
        )
        return self.verification_response(resolution)
