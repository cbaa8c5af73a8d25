"""Enum definitions shared across the pipeline."""

from __future__ import annotations

from enum import Enum


class PipelineStage(str, Enum):
    INITIALIZATION = "initialization"
    DEVELOPMENTAL = "developmental"
    LINE_EDITING = "line-editing"
    COPY_EDITING = "copy-editing"
    ASSETS = "assets"
    MARKET = "market-analysis"
    SOCIAL = "social-media"
    COVER = "cover-images"
    EXPORT = "export"
    COMPLETE = "complete"


class RunState(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETE = "complete"
    ERROR = "error"

    @property
    def terminal(self) -> bool:
        return self in (RunState.COMPLETE, RunState.ERROR)


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    RETRYING = "retrying"
    COMPLETED = "completed"
    DEAD = "dead"


class ManuscriptStatus(str, Enum):
    UPLOADED = "uploaded"
    QUEUED = "queued"
    ANALYZING = "analyzing"
    ANALYZED = "analyzed"
    FAILED = "failed"
    EXPORTED = "exported"


class ArtifactKind(str, Enum):
    """Artifact suffixes appended to a manuscript prefix (``{prefix}-{value}``)."""

    ANALYSIS = "analysis.json"
    LINE_ANALYSIS = "line-analysis.json"
    COPY_ANALYSIS = "copy-analysis.json"
    ASSETS = "assets.json"
    MARKET_ANALYSIS = "market-analysis.json"
    SOCIAL_MEDIA = "social-media.json"
    COVER_BRIEF = "cover-brief.json"
    COVER_IMAGES = "cover-images.json"
    FORMATTED_EPUB = "formatted.epub"
    FORMATTED_PDF = "formatted.pdf"

    @property
    def content_type(self) -> str:
        if self.value.endswith(".epub"):
            return "application/epub+zip"
        if self.value.endswith(".pdf"):
            return "application/pdf"
        return "application/json"

    @classmethod
    def from_slug(cls, slug: str) -> "ArtifactKind":
        """Resolve ``analysis`` or ``analysis.json`` style names."""

        for kind in cls:
            if slug in (kind.value, kind.value.rsplit(".", 1)[0], kind.name.lower()):
                return kind
        raise ValueError(f"Unknown artifact kind: {slug}")


class ExportFormat(str, Enum):
    EPUB = "epub"
    PDF = "pdf"

    @property
    def artifact(self) -> ArtifactKind:
        return ArtifactKind.FORMATTED_EPUB if self is ExportFormat.EPUB else ArtifactKind.FORMATTED_PDF


class CostCenter(str, Enum):
    CLAUDE_API = "claude_api"
    OPENAI_API = "openai_api"
    STRIPE_FEES = "stripe_fees"
    MOCK = "mock"


class UserTier(str, Enum):
    FREE = "free"
    PRO = "pro"
    ENTERPRISE = "enterprise"
    ADMIN = "admin"


class AssetAgent(str, Enum):
    """Sub-agents fanned out by the asset generation stage."""

    BOOK_DESCRIPTION = "bookDescription"
    KEYWORDS = "keywords"
    CATEGORIES = "categories"
    AUTHOR_BIO = "authorBio"
    BACK_MATTER = "backMatter"
    COVER_BRIEF = "coverBrief"
    SERIES_DESCRIPTION = "seriesDescription"


class PublishingPlatform(str, Enum):
    KDP = "kdp"
    DRAFT2DIGITAL = "draft2digital"
    INGRAMSPARK = "ingramspark"
    APPLE_BOOKS = "apple_books"
