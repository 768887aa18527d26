"""
ORACLE ADAPTER TESTS

LangChain chat models behind the ``invoke(prompt) -> str`` boundary.
"""
import asyncio

import pytest
from langchain_core.language_models import FakeListChatModel
from langchain_openai import ChatOpenAI

from pulse_omega.config import OmegaSettings
from pulse_omega.exceptions import OracleError, OracleTimeout
from pulse_omega.llm.oracle import ChatModelOracle, ReasoningOracle, ask_oracle, build_chat_model

pytestmark = pytest.mark.asyncio


class TestChatModelOracle:
    """Adapter over a LangChain chat model."""

    async def test_returns_message_content(self):
        oracle = ChatModelOracle(FakeListChatModel(responses=['{"approved": true}']))
        assert await oracle.invoke("Review this") == '{"approved": true}'

    async def test_satisfies_protocol(self):
        oracle = ChatModelOracle(FakeListChatModel(responses=["ok"]))
        assert isinstance(oracle, ReasoningOracle)

    async def test_build_chat_model(self):
        settings = OmegaSettings(llm_model="gpt-4o-mini", llm_api_key="sk-test")
        model = build_chat_model(settings)
        assert isinstance(model, ChatOpenAI)
        assert model.model_name == "gpt-4o-mini"


class TestAskOracle:
    """Caller-side timeout and error mapping."""

    async def test_passes_response_through(self):
        oracle = ChatModelOracle(FakeListChatModel(responses=["hello"]))
        assert await ask_oracle(oracle, "hi", timeout_s=1.0) == "hello"

    async def test_timeout(self):
        class SlowOracle:
            async def invoke(self, prompt):
                await asyncio.sleep(5)
                return "late"

        with pytest.raises(OracleTimeout) as exc_info:
            await ask_oracle(SlowOracle(), "hi", timeout_s=0.05)
        assert exc_info.value.details["timeout_s"] == 0.05

    async def test_errors_are_wrapped(self):
        class BrokenOracle:
            async def invoke(self, prompt):
                raise ConnectionError("connection refused")

        with pytest.raises(OracleError, match="connection refused"):
            await ask_oracle(BrokenOracle(), "hi", timeout_s=1.0)

    async def test_timeout_is_an_oracle_error(self):
        assert issubclass(OracleTimeout, OracleError)
