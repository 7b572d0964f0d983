"""Structured result returned by every tool handler."""

import base64
from typing import Any, Dict, Union

from pydantic import BaseModel

EMPTY_RESULT_TEXT = "tool completed with no output"


class ToolResult(BaseModel):
    """
    Outcome of a tool call.

    Handlers populate whichever fields make sense; callers combine them
    freely. Typical shapes:

    Examples:
        # Plain text
        ToolResult(text="navigated to https://example.com")

        # Inline binary with a caption
        ToolResult(text="Captured screenshot (image/png, 2048 bytes).",
                   binary=png_bytes, content_type="image/png")

        # File on disk
        ToolResult(text="Saved to /tmp/page.pdf", binary=pdf_bytes,
                   content_type="application/pdf", file_path="/tmp/page.pdf")
    """

    text: str = ""
    binary: bytes = b""
    content_type: str = ""
    file_path: str = ""
    inline_uri: str = ""

    def summary(self) -> str:
        """One-line description used in logs and fallback replies."""
        if self.text:
            return self.text
        if self.binary:
            return f"binary response ({len(self.binary)} bytes, content_type={self.content_type})"
        if self.file_path:
            return f"file saved at {self.file_path}"
        if self.inline_uri:
            return f"inline URI {self.inline_uri}"
        return EMPTY_RESULT_TEXT

    def to_payload(self) -> Union[str, Dict[str, Any]]:
        """
        Normalize the result into the payload sent back to the model.

        Returns:
            The bare text when only text is present, a fixed message when
            nothing is present, otherwise a dict with the populated fields
            (binary is base64-encoded).
        """
        payload: Dict[str, Any] = {}
        if self.text:
            payload["text"] = self.text
        if self.binary:
            payload["binary_base64"] = base64.b64encode(self.binary).decode("ascii")
        if self.content_type:
            payload["content_type"] = self.content_type
        if self.file_path:
            payload["file_path"] = self.file_path
        if self.inline_uri:
            payload["inline_uri"] = self.inline_uri

        if not payload:
            return EMPTY_RESULT_TEXT
        if len(payload) == 1 and "text" in payload:
            return payload["text"]
        return payload
