"""
Reasoning oracle adapters.

The pipeline only ever sees ``ReasoningOracle.invoke(prompt) -> str``. The
concrete model is a LangChain chat model created once at process start and
injected into ``OmegaPipeline``.
"""
import asyncio
import json
from typing import Optional, Protocol, runtime_checkable

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import HumanMessage
from langchain_openai import ChatOpenAI

from pulse_omega.config import OmegaSettings
from pulse_omega.exceptions import OracleError, OracleTimeout
from pulse_omega.logging_config import get_logger

logger = get_logger(__name__)


@runtime_checkable
class ReasoningOracle(Protocol):
    async def invoke(self, prompt: str) -> str:
        ...


class ChatModelOracle:
    """Adapts a LangChain chat model to the oracle interface."""

    def __init__(self, model: BaseChatModel):
        self.model = model

    async def invoke(self, prompt: str) -> str:
        response = await self.model.ainvoke([HumanMessage(content=prompt)])
        content = response.content
        return content if isinstance(content, str) else json.dumps(content)


def build_chat_model(settings: Optional[OmegaSettings] = None) -> ChatOpenAI:
    """JSON-oriented chat model from environment configuration."""
    settings = settings or OmegaSettings.from_env()
    return ChatOpenAI(
        base_url=settings.llm_base_url,
        api_key=settings.llm_api_key or "sk-local",
        model=settings.llm_model,
        temperature=settings.llm_temperature,
        timeout=settings.oracle_timeout_s,
    )


async def ask_oracle(oracle: ReasoningOracle, prompt: str, timeout_s: float) -> str:
    """
    Invoke the oracle with a caller-side timeout.

    Every failure surfaces as OracleError so stage nodes handle one type.
    """
    try:
        return await asyncio.wait_for(oracle.invoke(prompt), timeout=timeout_s)
    except asyncio.TimeoutError as exc:
        logger.warning("oracle_timeout", timeout_s=timeout_s)
        raise OracleTimeout(timeout_s) from exc
    except OracleError:
        raise
    except Exception as exc:
        raise OracleError(str(exc) or type(exc).__name__) from exc
