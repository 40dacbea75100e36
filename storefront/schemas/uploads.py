from storefront.schemas.common import ApiModel


class UploadOut(ApiModel):
    file_name: str
    original_name: str
    size: int
    mimetype: str
