from datetime import datetime
from typing import List

from pydantic import BaseModel, Field


class FileEntry(BaseModel):
    name: str
    path: str
    is_directory: bool
    size: int = Field(..., ge=0, description="Size in bytes as reported by lstat")
    modified: datetime


class DirectoryListing(BaseModel):
    """Contents of one directory inside the web root or the nginx site dirs."""

    path: str
    files: List[FileEntry] = Field(default_factory=list)
