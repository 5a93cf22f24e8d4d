"""
Unified hashing service for all hash computations.

The document hash is a plain SHA256 over the exact stamped bytes that are
uploaded to storage: no normalization, no metadata stripping. Any byte
difference, including PDF metadata rewritten by a re-save, changes it.
"""

import hashlib


class HashingService:
    """Service for all file and data hashing operations."""

    CHUNK_SIZE = 4096

    @staticmethod
    def digest(data: bytes) -> str:
        """
        Compute SHA256 hash of a byte buffer.

        Args:
            data: bytes, the exact content to hash

        Returns:
            str: 64 character lowercase hexadecimal SHA256 hash
        """
        return hashlib.sha256(bytes(data)).hexdigest()

    @staticmethod
    def compute_file_sha256(file_obj):
        """
        Compute SHA256 hash of a file object.

        Args:
            file_obj: Django File or file-like object opened in binary mode

        Returns:
            str: Hexadecimal SHA256 hash
        """
        sha256_hash = hashlib.sha256()

        # Save current position and seek to start
        current_pos = file_obj.tell() if hasattr(file_obj, 'tell') else 0
        file_obj.seek(0)

        for byte_block in iter(lambda: file_obj.read(HashingService.CHUNK_SIZE), b""):
            sha256_hash.update(byte_block)

        file_obj.seek(current_pos)

        return sha256_hash.hexdigest()


# Singleton instance
_hashing_service = None


def get_hashing_service() -> HashingService:
    """Get singleton instance of hashing service."""
    global _hashing_service
    if _hashing_service is None:
        _hashing_service = HashingService()
    return _hashing_service
