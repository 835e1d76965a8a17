from typing import Union

from cloudvault.models.user import User
from cloudvault.models.file import File
from cloudvault.models.folder import Folder
from cloudvault.models.share import Share, LinkShare
from cloudvault.models.activity import Activity, Star

# An Item is either node of the ownership tree
Item = Union[File, Folder]

__all__ = ["User", "File", "Folder", "Item", "Share", "LinkShare", "Activity", "Star"]
