"""Blob storage helpers: path layout, file validation and uploads through default_storage.

Every uploaded file lands under one of:
  donations/{orgId}/{ts}_{filename}
  donation-confirmations/{ts}_{filename}
  certifications/{ts}_{filename}
  receipts/{donationId}_{ts}_{filename}
  chat_images/{threadId}_{ts}_{filename}
"""
import logging
import os
import time

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.files.storage import default_storage
from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

IMAGE_TYPES = ('image/jpeg', 'image/png')
CERTIFICATION_TYPES = ('application/pdf', 'image/jpeg', 'image/png')
# Pillow format names accepted for each declared image type
PIL_FORMATS = {
    'image/jpeg': ('JPEG', 'MPO'),
    'image/png': ('PNG',),
}


def max_upload_bytes():
    return getattr(settings, 'FARMAID_MAX_UPLOAD_BYTES', 5 * 1024 * 1024)


def _timestamp_ms():
    return int(time.time() * 1000)


def _clean_name(filename):
    name = os.path.basename(filename or '') or 'upload'
    return name.replace(' ', '_')


def donation_image_path(org_id, filename, ts=None):
    return f"donations/{org_id}/{ts or _timestamp_ms()}_{_clean_name(filename)}"


def confirmation_image_path(filename, ts=None):
    return f"donation-confirmations/{ts or _timestamp_ms()}_{_clean_name(filename)}"


def certification_path(filename, ts=None):
    return f"certifications/{ts or _timestamp_ms()}_{_clean_name(filename)}"


def receipt_path(donation_id, filename, ts=None):
    return f"receipts/{donation_id}_{ts or _timestamp_ms()}_{_clean_name(filename)}"


def chat_image_path(thread_id, filename, ts=None):
    return f"chat_images/{thread_id}_{ts or _timestamp_ms()}_{_clean_name(filename)}"


def _check_declared(upload, allowed_types, label):
    content_type = getattr(upload, 'content_type', None) or ''
    if content_type not in allowed_types:
        raise ValidationError(f"Invalid file type: please upload a {label} file.", code='invalid_type')
    if upload.size is None or upload.size > max_upload_bytes():
        limit_mb = max_upload_bytes() // (1024 * 1024)
        raise ValidationError(f"File too large: please upload a file smaller than {limit_mb}MB.", code='too_large')
    return content_type


def validate_image(upload):
    """Accept only JPEG/PNG images within the size limit.

    The declared type and size are checked first; the content is then opened
    with Pillow so a renamed non-image is rejected as well.
    """
    content_type = _check_declared(upload, IMAGE_TYPES, 'JPEG or PNG')
    try:
        upload.seek(0)
        with Image.open(upload) as im:
            im_format = (im.format or '').upper()
            im.verify()
    except (UnidentifiedImageError, OSError, SyntaxError):
        raise ValidationError("Invalid file type: the file is not a readable image.", code='invalid_image')
    finally:
        upload.seek(0)
    if im_format not in PIL_FORMATS[content_type]:
        raise ValidationError("Invalid file type: the image content does not match its type.", code='invalid_image')
    return upload


def validate_certification(upload):
    _check_declared(upload, CERTIFICATION_TYPES, 'PDF, JPG, or PNG')
    return upload


def upload_file(upload, path, progress=None):
    """Save `upload` at `path` and return its public URL.

    `progress` (optional callable) receives 25 before the write, 75 once the
    blob is stored and 100 when the URL is resolved.
    """
    if progress:
        progress(25)
    upload.seek(0)
    saved_name = default_storage.save(path, upload)
    if progress:
        progress(75)
    url = default_storage.url(saved_name)
    if progress:
        progress(100)
    logger.info("Uploaded %s (%s bytes)", saved_name, upload.size)
    return url
