from doclib.models.audit import AuditLog, Notification  # noqa: F401
from doclib.models.hierarchy import (  # noqa: F401
    Category,
    CategoryTranslation,
    Department,
    Section,
    SectionTranslation,
)
from doclib.models.library import (  # noqa: F401
    AccessType,
    Download,
    FileAccessDepartment,
    FileAccessUser,
    FileFavorite,
    FileItem,
    FileRequest,
    FileRequestAccessDepartment,
    FileRequestAccessUser,
    FileRequestAsset,
    FileRequestStatus,
    FileRequestTranslation,
    FileRequestType,
    FileTranslation,
    FileVersion,
    FileVersionAsset,
    FileVersionTranslation,
)
