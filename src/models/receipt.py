
from pydantic import BaseModel, ConfigDict, Field

class ExtractRequest(BaseModel):
    """Body of POST /receipts/extract. Send either imageDataUrl or fileBase64 (+ fileName, mimeType)."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    image_data_url: str | None = Field(default=None, alias="imageDataUrl")  # data:image/...;base64,... or data:application/pdf;base64,...
    file_base64: str | None = Field(default=None, alias="fileBase64")  # PDF content, no data-URL prefix
    file_name: str | None = Field(default=None, alias="fileName")
    mime_type: str | None = Field(default=None, alias="mimeType")

    def to_raw_body(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)
