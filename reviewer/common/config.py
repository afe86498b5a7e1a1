"""
Configuration Management for the SOP reviewer

Loads configuration from ~/.sop-reviewer/config.json and environment variables.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field

from dotenv import load_dotenv

logger = logging.getLogger("reviewer.common.config")

# Default config paths
CONFIG_DIR = Path.home() / ".sop-reviewer"
CONFIG_PATH = CONFIG_DIR / "config.json"

DEFAULT_BEDROCK_MODEL = "anthropic.claude-3-5-sonnet-20240620-v1:0"
DEFAULT_EMBEDDING_MODEL = "sentence-transformers/all-MiniLM-L6-v2"

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass
class LLMConfig:
    """Generation service configuration"""
    provider: str = "bedrock"  # "bedrock" or "anthropic"
    model: str = DEFAULT_BEDROCK_MODEL
    aws_region: str = "us-east-1"
    anthropic_api_key: str = ""
    language: str = "en-US"  # ISO code the reply must be written in
    retries: int = 3
    max_tokens: int = 4096
    temperature: float = 0.0
    debug: bool = False


@dataclass
class PineconeConfig:
    """Pinecone index configuration"""
    api_key: str = ""
    host: str = ""  # e.g. sop-embeddings-2vib48a.svc.aped-4627-b74a.pinecone.io
    index_name: str = ""


@dataclass
class EmbeddingConfig:
    """Embedding model configuration"""
    model: str = DEFAULT_EMBEDDING_MODEL
    dimension: int = 384


@dataclass
class RetrieverConfig:
    """SOP retrieval configuration"""
    top_k: int = 3


@dataclass
class ReviewerConfig:
    """Main reviewer configuration"""
    llm: LLMConfig = field(default_factory=LLMConfig)
    pinecone: PineconeConfig = field(default_factory=PineconeConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    retriever: RetrieverConfig = field(default_factory=RetrieverConfig)
    _env_sourced_keys: set = field(default_factory=set, repr=False)


def _parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUTHY


def _parse_llm_config(data: dict) -> LLMConfig:
    """Parse llm section from config dict"""
    llm_data = data.get("llm", {})
    return LLMConfig(
        provider=llm_data.get("provider", "bedrock"),
        model=llm_data.get("model", DEFAULT_BEDROCK_MODEL),
        aws_region=llm_data.get("aws_region", "us-east-1"),
        anthropic_api_key=llm_data.get("anthropic_api_key", ""),
        language=llm_data.get("language", "en-US"),
        retries=int(llm_data.get("retries", 3)),
        max_tokens=int(llm_data.get("max_tokens", 4096)),
        temperature=float(llm_data.get("temperature", 0.0)),
        debug=_parse_bool(llm_data.get("debug", False)),
    )


def _parse_pinecone_config(data: dict) -> PineconeConfig:
    """Parse pinecone section from config dict"""
    pinecone_data = data.get("pinecone", {})
    return PineconeConfig(
        api_key=pinecone_data.get("api_key", ""),
        host=pinecone_data.get("host", ""),
        index_name=pinecone_data.get("index_name") or pinecone_data.get("index", ""),
    )


def _parse_embedding_config(data: dict) -> EmbeddingConfig:
    """Parse embedding section from config dict"""
    embedding_data = data.get("embedding", {})
    return EmbeddingConfig(
        model=embedding_data.get("model", DEFAULT_EMBEDDING_MODEL),
        dimension=int(embedding_data.get("dimension", 384)),
    )


def _parse_retriever_config(data: dict) -> RetrieverConfig:
    """Parse retriever section from config dict"""
    retriever_data = data.get("retriever", {})
    return RetrieverConfig(
        top_k=int(retriever_data.get("top_k", 3)),
    )


def load_config() -> ReviewerConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables (a .env file in the working directory is loaded first)
    2. Config file (~/.sop-reviewer/config.json)
    3. Default values
    """
    load_dotenv()
    config = ReviewerConfig()

    if CONFIG_PATH.exists():
        try:
            with open(CONFIG_PATH) as f:
                data = json.load(f)

            config.llm = _parse_llm_config(data)
            config.pinecone = _parse_pinecone_config(data)
            config.embedding = _parse_embedding_config(data)
            config.retriever = _parse_retriever_config(data)
        except (json.JSONDecodeError, IOError, ValueError) as e:
            logger.warning("Failed to load config file %s: %s", CONFIG_PATH, e)

    _env_map = {
        "REVIEWER_LLM_PROVIDER": (config.llm, "provider", str),
        "BEDROCK_MODEL": (config.llm, "model", str),
        "AWS_REGION": (config.llm, "aws_region", str),
        "ANTHROPIC_API_KEY": (config.llm, "anthropic_api_key", str),
        "REVIEW_LANGUAGE": (config.llm, "language", str),
        "BEDROCK_RETRIES": (config.llm, "retries", int),
        "REVIEWER_DEBUG": (config.llm, "debug", _parse_bool),
        "PINECONE_API_KEY": (config.pinecone, "api_key", str),
        "PINECONE_HOST": (config.pinecone, "host", str),
        "PINECONE_INDEX": (config.pinecone, "index_name", str),
        "EMBEDDING_MODEL": (config.embedding, "model", str),
        "SOP_TOP_K": (config.retriever, "top_k", int),
    }
    for env_var, (section, attr, convert) in _env_map.items():
        val = os.getenv(env_var)
        if not val:
            continue
        try:
            setattr(section, attr, convert(val))
        except ValueError:
            logger.warning("Ignoring invalid value for %s: %r", env_var, val)
            continue
        config._env_sourced_keys.add(env_var)

    return config


def save_config(config: ReviewerConfig) -> None:
    """Save configuration to file.

    Secrets that were sourced from environment variables are written
    as empty strings so that they are not persisted to disk.
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)

    env_sourced = getattr(config, "_env_sourced_keys", set())

    data = {
        "llm": {
            "provider": config.llm.provider,
            "model": config.llm.model,
            "aws_region": config.llm.aws_region,
            "anthropic_api_key": (
                "" if "ANTHROPIC_API_KEY" in env_sourced else config.llm.anthropic_api_key
            ),
            "language": config.llm.language,
            "retries": config.llm.retries,
            "max_tokens": config.llm.max_tokens,
            "temperature": config.llm.temperature,
            "debug": config.llm.debug,
        },
        "pinecone": {
            "api_key": "" if "PINECONE_API_KEY" in env_sourced else config.pinecone.api_key,
            "host": config.pinecone.host,
            "index_name": config.pinecone.index_name,
        },
        "embedding": {
            "model": config.embedding.model,
            "dimension": config.embedding.dimension,
        },
        "retriever": {
            "top_k": config.retriever.top_k,
        },
    }

    with open(CONFIG_PATH, "w") as f:
        json.dump(data, f, indent=2)

    # Set secure permissions
    CONFIG_PATH.chmod(0o600)
