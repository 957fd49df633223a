"""
Configuration Module - Load and validate application settings.
==============================================================

Loads configuration from:
1. config/settings.yaml (defaults)
2. Environment variables from .env file
3. Environment variables from system

Environment variables override YAML defaults.

Vocabulary and pattern lists (greetings, domain keywords, boilerplate and
negative-indicator phrases, keyword rules) are frozen models. They are built
once with the settings and handed to the components that use them.
"""

from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file early
load_dotenv()


# Find project root (where pyproject.toml is located)
def _find_project_root() -> Path:
    """Find the project root directory by looking for pyproject.toml."""
    current = Path(__file__).resolve()
    for parent in [current] + list(current.parents):
        if (parent / "pyproject.toml").exists():
            return parent
    # Fallback to current working directory
    return Path.cwd()


PROJECT_ROOT = _find_project_root()
CONFIG_DIR = PROJECT_ROOT / "config"
DEFAULT_CONFIG_FILE = CONFIG_DIR / "settings.yaml"


# ─────────────────────────────────────────────────────────────────────────────
# Vocabulary Models (immutable)
# ─────────────────────────────────────────────────────────────────────────────


class ClassifierConfig(BaseModel):
    """Vocabulary used by the question classifier."""

    model_config = ConfigDict(frozen=True)

    greetings: tuple[str, ...] = (
        "你好", "您好", "hello", "hi", "嗨", "早上好", "下午好", "晚上好",
        "谢谢", "感谢", "再见", "拜拜", "bye", "thanks", "thank you",
    )
    # Characters that may follow a greeting word in a prefix match
    greeting_separators: tuple[str, ...] = (" ", ",", ".", "，", "。", "!", "！")
    domain_keywords: tuple[str, ...] = (
        "图书", "期刊", "论文", "数据库", "馆藏", "借阅", "文献", "资料",
        "书籍", "杂志", "学术", "研究", "参考", "查阅", "检索", "索引",
        "mysql", "sql", "编程", "技术", "配置", "安装", "设置",
        "library", "journal", "paper", "database", "document", "academic",
    )
    factual_patterns: tuple[str, ...] = (
        "什么是", "如何", "怎样", "怎么", "定义", "解释", "是什么", "默认", "端口", "配置",
        r"\bwhat is\b", r"\bwhat are\b", r"\bhow to\b", r"\bhow do\b", r"\bdefine\b",
        r"\bexplain\b", r"\bdefault\b", r"\bport\b", r"\bconfigure\b",
    )
    creative_patterns: tuple[str, ...] = (
        "写一个", "创作", "设计", "想法", "建议", "帮我", "生成",
        r"\bwrite me\b", r"\bwrite a\b", r"\bdesign\b", r"\bsuggest\b", r"\bgenerate\b",
        r"\bcompose\b",
    )


class ContentFilterConfig(BaseModel):
    """Thresholds and phrases for the content quality filter."""

    model_config = ConfigDict(frozen=True)

    min_length: int = 30
    boilerplate_phrases: tuple[str, ...] = (
        "版权所有", "保留所有权利", "未经许可", "免责声明", "all rights reserved",
        "copyright ©", "this page intentionally left blank", "本页无正文",
    )
    toc_min_dots: int = 20
    toc_min_digits: int = 50
    toc_max_length: int = 200
    min_letter_ratio: float = 0.2
    letter_ratio_min_length: int = 100
    substantive_min_length: int = 100
    substantive_max_length: int = 2000
    sentence_endings: tuple[str, ...] = ("。", "！", "？", ".", "!", "?")
    commas: tuple[str, ...] = ("，", ",", "、")
    clause_marks: tuple[str, ...] = ("：", ":", "；", ";")
    connectives: tuple[str, ...] = (
        "因为", "所以", "如果", "那么", "首先", "其次", "然后", "最后",
        "because", "so", "if", "then", "first", "next", "finally",
    )
    copulas: tuple[str, ...] = ("是", "为", "指", "包括", " is ", " are ", " means ")


class KeywordRule(BaseModel):
    """Literal tokens to search for when any trigger occurs in the query."""

    model_config = ConfigDict(frozen=True)

    triggers: tuple[str, ...]
    keywords: tuple[str, ...]


def _default_keyword_rules() -> tuple[KeywordRule, ...]:
    return (
        KeywordRule(triggers=("mysql",), keywords=("mysql", "3306")),
        KeywordRule(triggers=("端口", "port"), keywords=("端口", "port", "3306", "默认端口")),
        KeywordRule(triggers=("默认",), keywords=("默认", "default")),
    )


class RelevanceConfig(BaseModel):
    """Relevance gate settings."""

    model_config = ConfigDict(frozen=True)

    min_answer_length: int = 30
    reasoning_start_marker: str = "<think>"
    reasoning_end_marker: str = "</think>"
    negative_indicators: tuple[str, ...] = (
        "无法找到相关信息", "没有找到相关信息", "未找到相关信息",
        "无法找到", "没有找到", "未找到", "找不到",
        "没有相关", "无相关", "无关信息",
        "文档中没有", "文档中未", "文档中无",
        "根据提供的文档内容，我无法", "根据文档内容，我无法",
        "抱歉", "无法", "不能",
        "cannot find", "could not find", "no relevant information",
        "sorry, unable to", "i'm sorry", "not mentioned in the document",
    )


# ─────────────────────────────────────────────────────────────────────────────
# Nested Configuration Models
# ─────────────────────────────────────────────────────────────────────────────


class ChunkingConfig(BaseModel):
    """Text chunking settings."""

    chunk_size: int = 1000
    chunk_overlap: int = 200
    large_text_threshold: int = 10 * 1024 * 1024
    super_batch_size: int = 100_000
    super_batch_overlap: int = 2000


class RetrievalConfig(BaseModel):
    """Retrieval cascade settings."""

    top_k: int = 5
    high_threshold: float = 0.85
    standard_threshold: float = 0.80
    max_top_k: int = 1000
    requery_factor: int = 2
    requery_cap: int = 20
    keyword_page_limit: int = 3
    max_merged_fragments: int = 8
    keyword_rules: tuple[KeywordRule, ...] = Field(default_factory=_default_keyword_rules)

    @field_validator("standard_threshold")
    @classmethod
    def validate_thresholds(cls, v: float, info: ValidationInfo) -> float:
        """The standard tier must not be stricter than the high tier."""
        high = info.data.get("high_threshold")
        if high is not None and v > high:
            raise ValueError("standard_threshold must be <= high_threshold")
        return v


class ContextConfig(BaseModel):
    """Context assembly settings."""

    base_max_length: int = 8000
    fast_max_length: int = 3000
    medium_tier_min_fragments: int = 4
    large_tier_min_fragments: int = 6
    medium_multiplier: float = 1.2
    large_multiplier: float = 1.5
    min_tail_budget: int = 100
    separator: str = "\n\n"
    ellipsis: str = "..."


class GenerationConfig(BaseModel):
    """LLM generation settings."""

    model_name: str = "gemini-2.0-flash"
    temperature: float = 0.2
    max_output_tokens: int = 2048
    top_p: float = 0.95
    top_k: int = 40
    max_attempts: int = 3
    multi_round_enabled: bool = False
    multi_round_min_fragments: int = 4
    max_rounds: int = 3
    fragments_per_round: int = 3
    no_info_marker: str = "无相关信息"


class StreamingConfig(BaseModel):
    """Streaming protocol settings."""

    timeout_seconds: float = 600.0
    split_reasoning: bool = True


class MessagesConfig(BaseModel):
    """User-facing strings."""

    library_label: str = "📚 基于图书馆资源"
    general_label: str = "🧠 基于通用知识"
    greeting_label: str = "👋 问候"
    error_label: str = "系统错误"
    general_note: str = "此回答基于AI的通用知识，建议查阅相关专业资料进行验证"
    greeting_reply: str = "您好！我是图书馆智能助手，可以帮您查找馆藏文档中的信息，也可以回答通用问题。请问有什么可以帮您？"
    router_apology: str = "抱歉，处理您的问题时发生了错误，请稍后重试。"
    general_apology: str = "抱歉，无法处理您的问题，请稍后重试。"
    generation_apology: str = "抱歉，生成回答时发生了错误。"
    not_found: str = "抱歉，我在文档中没有找到与您问题相关的信息。请尝试用不同的方式描述您的问题。"
    timeout: str = "抱歉，回答超时，请稍后重试。"


class IndexConfig(BaseModel):
    """Vector index settings."""

    collection_name: str = "document_chunks"


class PathsConfig(BaseModel):
    """Data paths configuration."""

    data_dir: str = "data"
    index_dir: str = "data/index"
    catalog_file: str = "data/documents.json"

    def resolve(self, base_path: Path) -> "ResolvedPaths":
        """Resolve paths relative to a base path."""
        return ResolvedPaths(
            data_dir=base_path / self.data_dir,
            index_dir=base_path / self.index_dir,
            catalog_file=base_path / self.catalog_file,
        )


class ResolvedPaths(BaseModel):
    """Resolved absolute paths."""

    data_dir: Path
    index_dir: Path
    catalog_file: Path

    model_config = {"arbitrary_types_allowed": True}


class LoggingConfig(BaseModel):
    """Logging settings."""

    level: str = "INFO"
    format: str = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
    rich_console: bool = True
    file: str = ""


# ─────────────────────────────────────────────────────────────────────────────
# Main Settings Class
# ─────────────────────────────────────────────────────────────────────────────


class Settings(BaseSettings):
    """
    Main application settings.

    Loads from:
    1. config/settings.yaml (defaults)
    2. Environment variables

    Environment variables override YAML settings.
    """

    model_config = SettingsConfigDict(
        env_prefix="",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    # API Keys (from environment only)
    gemini_api_key: str = Field(default="", validation_alias="GEMINI_API_KEY")

    # Top-level environment overrides
    gemini_model: Optional[str] = Field(default=None, validation_alias="GEMINI_MODEL")
    log_level: Optional[str] = Field(default=None, validation_alias="LOG_LEVEL")

    # Nested configurations (from YAML)
    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    content_filter: ContentFilterConfig = Field(default_factory=ContentFilterConfig)
    classifier: ClassifierConfig = Field(default_factory=ClassifierConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    context: ContextConfig = Field(default_factory=ContextConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    relevance: RelevanceConfig = Field(default_factory=RelevanceConfig)
    streaming: StreamingConfig = Field(default_factory=StreamingConfig)
    messages: MessagesConfig = Field(default_factory=MessagesConfig)
    index: IndexConfig = Field(default_factory=IndexConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        """Let environment variables win over the YAML values passed at init."""
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    # Computed properties
    _project_root: Path = PROJECT_ROOT
    _resolved_paths: Optional[ResolvedPaths] = None

    @field_validator("gemini_api_key", mode="before")
    @classmethod
    def validate_api_key(cls, v: Any) -> str:
        """Allow empty API key; the Gemini adapter complains when it is used."""
        if v is None:
            return ""
        return str(v)

    @property
    def project_root(self) -> Path:
        """Get the project root directory."""
        return self._project_root

    @property
    def resolved_paths(self) -> ResolvedPaths:
        """Get resolved absolute paths."""
        if self._resolved_paths is None:
            self._resolved_paths = self.paths.resolve(self._project_root)
        return self._resolved_paths

    def get_effective_model_name(self) -> str:
        """Get the effective generation model (env override or config)."""
        if self.gemini_model:
            return self.gemini_model
        return self.generation.model_name

    def get_effective_log_level(self) -> str:
        """Get the effective log level (env override or config)."""
        if self.log_level:
            return self.log_level.upper()
        return self.logging.level.upper()


def _load_yaml_config(config_path: Path) -> dict[str, Any]:
    """Load configuration from YAML file."""
    if not config_path.exists():
        return {}

    with open(config_path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
        return data if data else {}


def _create_settings(config_path: Optional[Path] = None) -> Settings:
    """Create settings instance by merging YAML defaults with environment."""
    if config_path is None:
        config_path = DEFAULT_CONFIG_FILE

    # Load YAML defaults
    yaml_config = _load_yaml_config(config_path)

    # Create settings with YAML as defaults, env vars will override
    return Settings(**yaml_config)


def load_settings(config_path: Path) -> Settings:
    """Build a settings instance from an explicit YAML file (not cached)."""
    return _create_settings(config_path)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get the singleton settings instance.

    Returns:
        Settings instance with merged configuration

    Example:
        >>> settings = get_settings()
        >>> print(settings.retrieval.high_threshold)
        0.85
    """
    return _create_settings()


def reload_settings() -> Settings:
    """
    Force reload of settings (clears cache).

    Returns:
        Fresh Settings instance
    """
    get_settings.cache_clear()
    return get_settings()
