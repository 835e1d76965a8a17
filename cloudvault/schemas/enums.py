from enum import Enum


class ItemKind(str, Enum):
    FILE = "file"
    FOLDER = "folder"


class Permission(str, Enum):
    VIEWER = "viewer"
    EDITOR = "editor"


class FileStatus(str, Enum):
    UPLOADING = "uploading"
    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"


class ActivityAction(str, Enum):
    UPLOAD = "upload"
    DOWNLOAD = "download"
    VIEW = "view"
    CREATE_FOLDER = "create_folder"
    RENAME = "rename"
    MOVE = "move"
    DELETE = "delete"
    SHARE = "share"
