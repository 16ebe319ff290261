"""config.yaml templates per model provider and the .env generator."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from pathlib import Path

from .constants import CONFIG_FILE_NAME, ENV_FILE_NAME

logger = logging.getLogger(__name__)

ENGINE_SECTION = """\
type: engine
provider: analytics_ui
endpoint: http://analytics-ui:3000
"""

PIPELINE_TEMPLATE = """\
type: pipeline
pipes:
  - name: db_schema_indexing
    embedder: litellm_embedder.default
    document_store: qdrant
  - name: table_description_indexing
    embedder: litellm_embedder.default
    document_store: qdrant
  - name: historical_question_indexing
    embedder: litellm_embedder.default
    document_store: qdrant
  - name: sql_generation
    llm: litellm_llm.default
    engine: analytics_ui
    document_store: qdrant
  - name: sql_correction
    llm: litellm_llm.default
    engine: analytics_ui
  - name: sql_answer
    llm: {{LLM_SQL_ANSWER}}
  - name: data_assistance
    llm: {{LLM_DATA_ASSISTANCE}}
  - name: chart_generation
    llm: {{LLM_CHART_GENERATION}}
  - name: chart_adjustment
    llm: {{LLM_CHART_ADJUSTMENT}}
  - name: sql_generation_reasoning
    llm: {{LLM_SQL_GENERATION_REASONING}}
  - name: followup_sql_generation_reasoning
    llm: {{LLM_FOLLOWUP_SQL_GENERATION_REASONING}}
"""

SETTINGS_TEMPLATE = """\
settings:
  engine_timeout: 30
  column_indexing_batch_size: 50
  table_retrieval_size: 10
  table_column_retrieval_size: 100
  allow_intent_classification: true
  allow_sql_generation_reasoning: true
  query_cache_maxsize: 1000
  query_cache_ttl: 3600
  langfuse_host: https://cloud.langfuse.com
  langfuse_enable: {{LANGFUSE_ENABLE}}
  logging_level: {{LOGGING_LEVEL}}
  development: {{DEVELOPMENT}}
"""

PIPELINE_DEFAULT_BINDINGS: tuple[tuple[str, str], ...] = (
    ("{{LLM_SQL_ANSWER}}", "litellm_llm.default"),
    ("{{LLM_DATA_ASSISTANCE}}", "litellm_llm.default"),
    ("{{LLM_CHART_GENERATION}}", "litellm_llm.default"),
    ("{{LLM_CHART_ADJUSTMENT}}", "litellm_llm.default"),
    ("{{LLM_SQL_GENERATION_REASONING}}", "litellm_llm.default"),
    ("{{LLM_FOLLOWUP_SQL_GENERATION_REASONING}}", "litellm_llm.default"),
)


@dataclass(frozen=True)
class TemplateSettings:
    langfuse_enable: bool = True
    logging_level: str = "DEBUG"
    development: bool = True


SETTINGS_OPENAI = TemplateSettings(langfuse_enable=False, logging_level="INFO", development=False)
SETTINGS_DEBUG = TemplateSettings(development=False)
SETTINGS_DEVELOPMENT = TemplateSettings()


@dataclass(frozen=True)
class ModelSpec:
    """One litellm model entry in the provider's ``llm`` block."""

    model: str
    alias: str = "default"
    api_base: str | None = None
    api_key_name: str | None = None
    max_tokens: int = 4096
    extra: tuple[tuple[str, str], ...] = ()


def _model_block(spec: ModelSpec) -> str:
    lines = [f"  - model: {spec.model}", f"    alias: {spec.alias}"]
    if spec.api_base:
        lines.append(f"    api_base: {spec.api_base}")
    if spec.api_key_name:
        lines.append(f"    api_key_name: {spec.api_key_name}")
    lines.extend(f"    {key}: {value}" for key, value in spec.extra)
    lines += [
        "    timeout: 120",
        "    kwargs:",
        "      n: 1",
        "      temperature: 0",
        f"      max_tokens: {spec.max_tokens}",
    ]
    return "\n".join(lines)


def provider_template(
    models: tuple[ModelSpec, ...],
    embedder: ModelSpec,
    embedding_dim: int,
) -> str:
    """Provider section with placeholders for the shared sections."""
    llm = "\n".join(_model_block(spec) for spec in models)
    embed_lines = [f"  - model: {embedder.model}", "    alias: default"]
    if embedder.api_base:
        embed_lines.append(f"    api_base: {embedder.api_base}")
    if embedder.api_key_name:
        embed_lines.append(f"    api_key_name: {embedder.api_key_name}")
    embed_lines.append("    timeout: 120")
    return (
        "type: llm\n"
        "provider: litellm_llm\n"
        "models:\n"
        f"{llm}\n"
        "---\n"
        "type: embedder\n"
        "provider: litellm_embedder\n"
        "models:\n"
        + "\n".join(embed_lines)
        + "\n---\n"
        "type: document_store\n"
        "provider: qdrant\n"
        "location: http://qdrant:6333\n"
        f"embedding_model_dim: {embedding_dim}\n"
        "timeout: 120\n"
        "recreate_index: false\n"
        "---\n"
        "{{ENGINE_SECTION}}"
        "---\n"
        "{{PIPELINE_SECTION}}"
        "---\n"
        "{{SETTINGS_SECTION}}"
    )


_OPENAI_EMBEDDER = ModelSpec("text-embedding-3-large", api_base="https://api.openai.com/v1", api_key_name="OPENAI_API_KEY")


@dataclass(frozen=True)
class ConfigTemplate:
    """A selectable config.yaml flavour."""

    key: str
    name: str
    description: str
    template: str
    pipeline_overrides: tuple[tuple[str, str], ...] = ()
    settings: TemplateSettings = SETTINGS_DEVELOPMENT

    def render(self) -> str:
        content = self.template.replace("{{ENGINE_SECTION}}", ENGINE_SECTION)
        content = content.replace("{{PIPELINE_SECTION}}", render_pipeline(self.pipeline_overrides))
        return content.replace("{{SETTINGS_SECTION}}", render_settings(self.settings))


def render_pipeline(overrides: tuple[tuple[str, str], ...]) -> str:
    chosen = dict(overrides)
    rendered = PIPELINE_TEMPLATE
    for placeholder, default in PIPELINE_DEFAULT_BINDINGS:
        rendered = rendered.replace(placeholder, chosen.get(placeholder, default))
    return rendered


def _yaml_bool(value: bool) -> str:
    return "true" if value else "false"


def render_settings(settings: TemplateSettings) -> str:
    return (
        SETTINGS_TEMPLATE.replace("{{LANGFUSE_ENABLE}}", _yaml_bool(settings.langfuse_enable))
        .replace("{{LOGGING_LEVEL}}", settings.logging_level)
        .replace("{{DEVELOPMENT}}", _yaml_bool(settings.development))
    )


_OVERRIDES_DEEPSEEK = (
    ("{{LLM_SQL_ANSWER}}", "litellm_llm.deepseek/deepseek-chat"),
    ("{{LLM_DATA_ASSISTANCE}}", "litellm_llm.deepseek/deepseek-chat"),
    ("{{LLM_SQL_GENERATION_REASONING}}", "litellm_llm.deepseek/deepseek-reasoner"),
    ("{{LLM_FOLLOWUP_SQL_GENERATION_REASONING}}", "litellm_llm.deepseek/deepseek-reasoner"),
)
_OVERRIDES_GEMINI_CHART = (
    ("{{LLM_CHART_GENERATION}}", "litellm_llm.gemini-llm-for-chart"),
    ("{{LLM_CHART_ADJUSTMENT}}", "litellm_llm.gemini-llm-for-chart"),
)
_OVERRIDES_QWEN3 = (
    ("{{LLM_SQL_ANSWER}}", "litellm_llm.qwen3-fast"),
    ("{{LLM_DATA_ASSISTANCE}}", "litellm_llm.qwen3-fast"),
    ("{{LLM_SQL_GENERATION_REASONING}}", "litellm_llm.qwen3-thinking"),
    ("{{LLM_FOLLOWUP_SQL_GENERATION_REASONING}}", "litellm_llm.qwen3-thinking"),
)
_OVERRIDES_ZHIPU = (
    ("{{LLM_SQL_ANSWER}}", "litellm_llm.glm45-fast"),
    ("{{LLM_DATA_ASSISTANCE}}", "litellm_llm.glm45-fast"),
    ("{{LLM_SQL_GENERATION_REASONING}}", "litellm_llm.glm45-thinking"),
    ("{{LLM_FOLLOWUP_SQL_GENERATION_REASONING}}", "litellm_llm.glm45-thinking"),
)

CONFIG_TEMPLATES: tuple[ConfigTemplate, ...] = (
    ConfigTemplate(
        key="openai",
        name="OpenAI (GPT-4o mini)",
        description="Use OpenAI gpt-4o-mini with text-embedding-3-large",
        template=provider_template(
            (ModelSpec("gpt-4o-mini-2024-07-18", api_base="https://api.openai.com/v1", api_key_name="OPENAI_API_KEY"),),
            _OPENAI_EMBEDDER,
            3072,
        ),
        settings=SETTINGS_OPENAI,
    ),
    ConfigTemplate(
        key="anthropic",
        name="Anthropic Claude 3.7 Sonnet",
        description="Anthropic Claude via api.anthropic.com",
        template=provider_template(
            (ModelSpec("anthropic/claude-3-7-sonnet-latest", api_key_name="ANTHROPIC_API_KEY"),),
            _OPENAI_EMBEDDER,
            3072,
        ),
        settings=SETTINGS_DEBUG,
    ),
    ConfigTemplate(
        key="azure",
        name="Azure OpenAI",
        description="Azure OpenAI deployment using gpt-4",
        template=provider_template(
            (
                ModelSpec(
                    "azure/gpt-4",
                    api_base="https://endpoint.openai.azure.com",
                    api_key_name="AZURE_OPENAI_API_KEY",
                    extra=(("api_version", "2024-02-15-preview"),),
                ),
            ),
            ModelSpec(
                "azure/text-embedding-ada-002",
                api_base="https://endpoint.openai.azure.com",
                api_key_name="AZURE_OPENAI_API_KEY",
            ),
            1536,
        ),
        settings=SETTINGS_DEBUG,
    ),
    ConfigTemplate(
        key="bedrock",
        name="AWS Bedrock",
        description="Amazon Bedrock Claude Sonnet + Titan embeddings",
        template=provider_template(
            (ModelSpec("bedrock/anthropic.claude-3-7-sonnet-20250219-v1:0", extra=(("aws_region_name", "us-east-1"),)),),
            ModelSpec("bedrock/amazon.titan-embed-text-v2:0"),
            1024,
        ),
        settings=SETTINGS_DEBUG,
    ),
    ConfigTemplate(
        key="deepseek",
        name="DeepSeek",
        description="DeepSeek reasoning and chat models via api.deepseek.com",
        template=provider_template(
            (
                ModelSpec("deepseek/deepseek-reasoner", alias="default", api_key_name="DEEPSEEK_API_KEY"),
                ModelSpec("deepseek/deepseek-reasoner", alias="deepseek/deepseek-reasoner", api_key_name="DEEPSEEK_API_KEY"),
                ModelSpec("deepseek/deepseek-chat", alias="deepseek/deepseek-chat", api_key_name="DEEPSEEK_API_KEY"),
            ),
            _OPENAI_EMBEDDER,
            3072,
        ),
        pipeline_overrides=_OVERRIDES_DEEPSEEK,
    ),
    ConfigTemplate(
        key="google_ai_studio",
        name="Google Gemini (AI Studio)",
        description="Gemini 2.0 Flash via Google AI Studio",
        template=provider_template(
            (
                ModelSpec("gemini/gemini-2.0-flash", api_key_name="GEMINI_API_KEY"),
                ModelSpec("gemini/gemini-2.0-flash", alias="gemini-llm-for-chart", api_key_name="GEMINI_API_KEY"),
            ),
            ModelSpec("gemini/text-embedding-004", api_key_name="GEMINI_API_KEY"),
            768,
        ),
        pipeline_overrides=_OVERRIDES_GEMINI_CHART,
    ),
    ConfigTemplate(
        key="google_vertexai",
        name="Google Gemini (Vertex AI)",
        description="Gemini 2.5 Flash via Vertex AI",
        template=provider_template(
            (
                ModelSpec("vertex_ai/gemini-2.5-flash", extra=(("vertex_location", "us-central1"),)),
                ModelSpec("vertex_ai/gemini-2.5-flash", alias="gemini-llm-for-chart", extra=(("vertex_location", "us-central1"),)),
            ),
            ModelSpec("vertex_ai/text-embedding-004"),
            768,
        ),
        pipeline_overrides=_OVERRIDES_GEMINI_CHART,
    ),
    ConfigTemplate(
        key="grok",
        name="xAI Grok",
        description="xAI Grok 3 via api.x.ai",
        template=provider_template(
            (ModelSpec("xai/grok-3-beta", api_key_name="XAI_API_KEY"),),
            _OPENAI_EMBEDDER,
            3072,
        ),
    ),
    ConfigTemplate(
        key="groq",
        name="Groq Llama 3.3",
        description="Groq API with Llama 3.3 70B specdec",
        template=provider_template(
            (ModelSpec("groq/llama-3.3-70b-specdec", api_key_name="GROQ_API_KEY"),),
            _OPENAI_EMBEDDER,
            3072,
        ),
    ),
    ConfigTemplate(
        key="lm_studio",
        name="LM Studio",
        description="Local LM Studio endpoint (phi-4 + nomic embeddings)",
        template=provider_template(
            (ModelSpec("lm_studio/phi-4", api_base="http://host.docker.internal:1234/v1"),),
            ModelSpec("lm_studio/text-embedding-nomic-embed-text-v1.5", api_base="http://host.docker.internal:1234/v1"),
            768,
        ),
    ),
    ConfigTemplate(
        key="ollama",
        name="Ollama",
        description="Local Ollama with phi4:14b",
        template=provider_template(
            (ModelSpec("ollama_chat/phi4:14b", api_base="http://host.docker.internal:11434"),),
            ModelSpec("ollama/nomic-embed-text:latest", api_base="http://host.docker.internal:11434"),
            768,
        ),
    ),
    ConfigTemplate(
        key="open_router",
        name="OpenRouter",
        description="OpenRouter Claude 3.7 Sonnet",
        template=provider_template(
            (ModelSpec("openrouter/anthropic/claude-3.7-sonnet", api_base="https://openrouter.ai/api/v1", api_key_name="OPENROUTER_API_KEY"),),
            _OPENAI_EMBEDDER,
            3072,
        ),
        settings=SETTINGS_DEBUG,
    ),
    ConfigTemplate(
        key="qwen3",
        name="Qwen3",
        description="Qwen3 via OpenRouter with thinking and fast modes",
        template=provider_template(
            (
                ModelSpec("openrouter/qwen/qwen3-235b-a22b", api_base="https://openrouter.ai/api/v1", api_key_name="OPENROUTER_API_KEY"),
                ModelSpec(
                    "openrouter/qwen/qwen3-235b-a22b",
                    alias="qwen3-thinking",
                    api_base="https://openrouter.ai/api/v1",
                    api_key_name="OPENROUTER_API_KEY",
                    max_tokens=8192,
                ),
                ModelSpec("openrouter/qwen/qwen3-30b-a3b", alias="qwen3-fast", api_base="https://openrouter.ai/api/v1", api_key_name="OPENROUTER_API_KEY"),
            ),
            _OPENAI_EMBEDDER,
            3072,
        ),
        pipeline_overrides=_OVERRIDES_QWEN3,
    ),
    ConfigTemplate(
        key="zhipu",
        name="Zhipu GLM-4.5",
        description="Zhipu AI GLM-4.5 with thinking/fast variants",
        template=provider_template(
            (
                ModelSpec("openai/glm-4.5", api_base="https://open.bigmodel.cn/api/paas/v4", api_key_name="ZHIPU_API_KEY"),
                ModelSpec(
                    "openai/glm-4.5",
                    alias="glm45-thinking",
                    api_base="https://open.bigmodel.cn/api/paas/v4",
                    api_key_name="ZHIPU_API_KEY",
                    max_tokens=8192,
                ),
                ModelSpec("openai/glm-4.5-air", alias="glm45-fast", api_base="https://open.bigmodel.cn/api/paas/v4", api_key_name="ZHIPU_API_KEY"),
            ),
            _OPENAI_EMBEDDER,
            3072,
        ),
        pipeline_overrides=_OVERRIDES_ZHIPU,
    ),
)


def find_template(key: str) -> ConfigTemplate | None:
    for template in CONFIG_TEMPLATES:
        if template.key == key:
            return template
    return None


# ── Providers / .env ───────────────────────────────────────────


@dataclass(frozen=True)
class ProviderInfo:
    key: str
    api_key_label: str
    env_key: str
    needs_openai_embedding: bool = False
    is_local: bool = False


PROVIDERS: dict[str, ProviderInfo] = {
    info.key: info
    for info in (
        ProviderInfo("openai", "OpenAI", "OPENAI_API_KEY"),
        ProviderInfo("anthropic", "Anthropic", "ANTHROPIC_API_KEY", needs_openai_embedding=True),
        ProviderInfo("azure", "Azure OpenAI", "AZURE_OPENAI_API_KEY"),
        ProviderInfo("bedrock", "AWS", "API_KEY"),
        ProviderInfo("deepseek", "DeepSeek", "DEEPSEEK_API_KEY", needs_openai_embedding=True),
        ProviderInfo("google_ai_studio", "Google AI Studio", "GEMINI_API_KEY"),
        ProviderInfo("google_vertexai", "Google Vertex AI", "GOOGLE_APPLICATION_CREDENTIALS"),
        ProviderInfo("grok", "xAI Grok", "XAI_API_KEY", needs_openai_embedding=True),
        ProviderInfo("groq", "Groq", "GROQ_API_KEY", needs_openai_embedding=True),
        ProviderInfo("lm_studio", "LM Studio (Local - No API Key)", "LM_STUDIO_API_KEY", is_local=True),
        ProviderInfo("ollama", "Ollama (Local - No API Key)", "", is_local=True),
        ProviderInfo("open_router", "OpenRouter", "OPENROUTER_API_KEY"),
        ProviderInfo("qwen3", "Qwen", "OPENROUTER_API_KEY", needs_openai_embedding=True),
        ProviderInfo("zhipu", "Zhipu", "ZHIPU_API_KEY", needs_openai_embedding=True),
    )
}

_GENERIC_PROVIDER = ProviderInfo("", "API", "API_KEY")


def provider_info(key: str) -> ProviderInfo:
    return PROVIDERS.get(key, _GENERIC_PROVIDER)


ENV_TEMPLATE = """\
COMPOSE_PROJECT_NAME=nqrust-analytics
PLATFORM=linux/amd64

PROJECT_DIR=.

# service port
ANALYTICS_ENGINE_PORT=8080
ANALYTICS_AI_SERVICE_PORT={{ANALYTICS_AI_SERVICE_PORT}}
ANALYTICS_UI_PORT=3000

# ai service settings
QDRANT_HOST=qdrant
SHOULD_FORCE_DEPLOY=1

# vendor keys
OPENAI_API_KEY={{OPENAI_API_KEY}}

# version
GENERATION_MODEL={{GENERATION_MODEL}}

# user id (uuid v4)
USER_UUID={{USER_UUID}}

# ports exposed on the host
HOST_PORT={{HOST_PORT}}
AI_SERVICE_FORWARD_PORT={{AI_SERVICE_FORWARD_PORT}}

# northwind demo database
NORTHWIND_DB_USER=demo
NORTHWIND_DB_PASSWORD=demo
"""

_ENV_DEFAULTS = (
    ("{{ANALYTICS_AI_SERVICE_PORT}}", "5555"),
    ("{{GENERATION_MODEL}}", "default"),
    ("{{HOST_PORT}}", "3000"),
    ("{{AI_SERVICE_FORWARD_PORT}}", "5555"),
)


def new_user_uuid() -> str:
    return f"demo-user-{str(uuid.uuid4()).split('-')[0]}"


def validate_env_values(provider: str, api_key: str, openai_api_key: str = "") -> str | None:
    """Return a form error message, or None when the values are acceptable."""
    info = provider_info(provider)
    if info.is_local:
        return None
    if not api_key.strip():
        return f"{info.api_key_label} API Key is required!"
    if info.needs_openai_embedding and not openai_api_key.strip():
        return "OpenAI API Key is required for embedding model!"
    return None


def render_env(
    provider: str,
    api_key: str,
    openai_api_key: str = "",
    user_uuid: str | None = None,
    template: str = ENV_TEMPLATE,
) -> str:
    """Fill the .env template for ``provider``.

    The provider key goes right under ``# vendor keys``. OPENAI_API_KEY is kept
    only when it is the provider key itself or the provider embeds with OpenAI.
    """
    content = template
    for placeholder, value in _ENV_DEFAULTS:
        content = content.replace(placeholder, value)
    content = content.replace("{{USER_UUID}}", user_uuid or new_user_uuid())

    info = provider_info(provider)
    env_key = info.env_key
    api_value = api_key.strip()
    openai_value = openai_api_key.strip()

    if not env_key:
        return content.replace("{{OPENAI_API_KEY}}", "")
    if env_key == "OPENAI_API_KEY":
        return content.replace("{{OPENAI_API_KEY}}", api_value)

    needs_openai = info.needs_openai_embedding and bool(openai_value)
    out: list[str] = []
    added_provider = False
    added_openai = False
    for line in content.splitlines():
        stripped = line.strip()
        if stripped in ("OPENAI_API_KEY={{OPENAI_API_KEY}}", "OPENAI_API_KEY="):
            continue
        if stripped.startswith(f"{env_key}="):
            out.append(f"{env_key}={api_value}")
            added_provider = True
        elif stripped.startswith("OPENAI_API_KEY="):
            if needs_openai:
                out.append(f"OPENAI_API_KEY={openai_value}")
                added_openai = True
        else:
            out.append(line)
            if "# vendor keys" in line:
                if not added_provider:
                    out.append(f"{env_key}={api_value}")
                    added_provider = True
                if needs_openai and not added_openai:
                    out.append(f"OPENAI_API_KEY={openai_value}")
                    added_openai = True

    if not added_provider:
        out.append(f"{env_key}={api_value}")
    if needs_openai and not added_openai:
        out.append(f"OPENAI_API_KEY={openai_value}")
    return "\n".join(out) + "\n"


def write_config_file(template: ConfigTemplate, root: Path) -> Path:
    path = root / CONFIG_FILE_NAME
    path.write_text(template.render())
    logger.info("Wrote %s from template %s", path, template.key)
    return path


def write_env_file(content: str, root: Path) -> Path:
    path = root / ENV_FILE_NAME
    path.write_text(content)
    logger.info("Wrote %s", path)
    return path
