"""Configuration type definitions - single source of truth for all config classes."""

from dataclasses import dataclass, field


@dataclass(frozen=True, slots=True)
class ModelConfig:
    """Model provider settings."""

    provider: str = "gemini"
    """Response format to expect: gemini, openai, anthropic or ollama."""

    model: str = "gemini-2.0-flash"
    """Model name sent with every request."""

    base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    """Provider endpoint root."""

    api_keys: tuple[str, ...] = ()
    """Key pool. Keys rotate when one is rate limited."""

    request_timeout: float = 120.0
    """Per-request timeout in seconds."""

    connect_timeout: float = 30.0
    """Connection timeout in seconds."""

    max_connections: int = 10
    """Connection pool size."""

    max_retries: int = 5
    """Retry attempts for transient failures."""

    retry_initial_ms: int = 1_000
    """First backoff delay."""

    retry_max_ms: int = 10_000
    """Backoff cap."""

    key_cooldown_seconds: float = 60.0
    """How long a rate-limited key stays out of rotation."""

    temperature: float | None = None
    """Sampling temperature (provider default when unset)."""


@dataclass(frozen=True, slots=True)
class EngineConfig:
    """Script execution limits."""

    max_turns: int = 50
    """Maximum turns per run, chained scripts included."""

    max_tool_iterations: int = 25
    """Maximum model/tool round trips while resolving one placeholder."""

    max_chain_depth: int = 8
    """Maximum nesting of -> chained scripts."""

    max_loop_iterations: int = 1000
    """Maximum iterations of a single $while block."""

    max_history_messages: int = 50
    """Older messages are trimmed from the request beyond this count."""

    parallel_tools: bool = True
    """Dispatch independent tool calls concurrently."""

    scripts_dir: str = ".scriptwell/scripts"
    """Where send_message looks for routed scripts."""


@dataclass(frozen=True, slots=True)
class ToolsConfig:
    """Built-in tool settings."""

    shell_timeout: float = 60.0
    """Hard wall-clock limit for the shell tool, in seconds."""

    max_output_chars: int = 20_000
    """Tool output is truncated beyond this size."""

    fuzzy_min_similarity: float = 0.85
    """Minimum similarity accepted by edit_file."""


@dataclass(frozen=True, slots=True)
class AnalysisConfig:
    """Workspace analysis settings."""

    ignore_file: str = ".scriptwellignore"
    """Ignore-list file name at the workspace root."""

    snapshot_path: str = ".scriptwell/project_analysis.json"
    """Where the project analysis snapshot is persisted."""

    max_blueprint_files: int = 100
    """Blueprint lists at most this many files."""

    max_file_bytes: int = 1_000_000
    """Files larger than this are skipped by workspace scans."""


@dataclass(frozen=True, slots=True)
class ScriptwellConfig:
    """Root configuration for Scriptwell."""

    model: ModelConfig = field(default_factory=ModelConfig)
    """Model provider settings."""

    engine: EngineConfig = field(default_factory=EngineConfig)
    """Execution limits."""

    tools: ToolsConfig = field(default_factory=ToolsConfig)
    """Tool settings."""

    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    """Workspace analysis settings."""

    debug: bool = False
    """Enable debug logging by default."""
