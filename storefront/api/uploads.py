import logging

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from storefront.core.deps import get_current_user
from storefront.models.user import User
from storefront.schemas.uploads import UploadOut
from storefront.services.sanitize import escape_text
from storefront.services.uploads import (
    build_stored_name,
    public_file_name,
    store_temp_file,
    validate_upload_or_400,
)

_LOG = logging.getLogger("storefront.uploads")

router = APIRouter()


@router.post("", status_code=201)
def upload_file(
    file: UploadFile | None = File(None),
    user: User = Depends(get_current_user),
):
    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail="File is not provided")
    content = file.file.read()
    mime_type = validate_upload_or_400(file.filename, file.content_type, len(content))
    stored_name = build_stored_name(file.filename)
    store_temp_file(stored_name, content)
    _LOG.info("upload stored name=%s size=%s user=%s", stored_name, len(content), user.id)
    return UploadOut(
        file_name=public_file_name(stored_name),
        original_name=escape_text(file.filename, 255),
        size=len(content),
        mimetype=mime_type,
    ).to_wire()
