"""Well-known keys for segment, artifact and document metadata maps."""


class MetadataKeys:
    PAGE = "page"
    SLIDE = "slide"
    SHEET = "sheet"
    SHEET_NAME = "sheetName"

    CAPTION = "caption"
    OCR_TEXT = "ocrText"
    PROVIDER = "provider"
    SNAPSHOT = "snapshot"
    IMAGE_SEGMENT_INDEX = "image.segmentIndex"

    TABLE_INDEX = "table.index"
    TABLE_PAGE_START = "table.pageStart"
    TABLE_PAGE_END = "table.pageEnd"
    TABLE_PAGE_RANGE = "table.pageRange"
    TABLE_COMMENT = "table.comment"

    DOCUMENT_PAGES = "document.pages"
    DOCUMENT_IMAGES = "document.images"
    DOCUMENT_TABLES = "document.tables"
    DOCUMENT_TITLE = "document.title"
    DOCUMENT_TITLE_HINT = "document.titleHint"
    DOCUMENT_AUTHOR = "document.author"
    DOCUMENT_SUBJECT = "document.subject"
    DOCUMENT_CREATED = "document.created"
    DOCUMENT_MODIFIED = "document.modified"
    DOCUMENT_INTELLIGENCE_PROVIDER = "documentIntelligence.provider"

    WORKSPACE_DIRECTORY = "workspace.directory"
    WORKSPACE_SOURCE_FILE = "workspace.sourceFile"
    WORKSPACE_MARKDOWN_FILE = "workspace.markdownFile"

    ARTIFACT_PATH = "artifact.path"
    ARTIFACT_RELATIVE_PATH = "artifact.relativePath"
    ARTIFACT_FILE_NAME = "artifact.fileName"

    ENTRY = "entry"
    SIZE_BYTES = "sizeBytes"
    ARCHIVE = "archive"
    LAST_MODIFIED_UTC = "lastModifiedUtc"

    EMAIL_SUBJECT = "email.subject"
    EMAIL_FROM = "email.from"
    EMAIL_TO = "email.to"
    EMAIL_DATE = "email.date"
    EMAIL_ATTACHMENTS = "email.attachments"
    EMAIL_ATTACHMENT_NAMES = "email.attachmentNames"

    EPUB_PREFIX = "epub."

    AUDIO_DURATION = "audio.duration"
    AUDIO_LANGUAGE = "audio.language"


class MetadataValues:
    PROVIDER_DOCUMENT_INTELLIGENCE = "document-intelligence"
    PROVIDER_IMAGE_UNDERSTANDING = "image-understanding"
    TRUE = "true"
