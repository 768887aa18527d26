"""
LLM MODULE

Components:
- oracle: ReasoningOracle protocol and the LangChain chat-model adapter
- decoder: best-effort JSON extraction from oracle output
- prompts: stage prompt templates
"""
from pulse_omega.llm.decoder import DecodeResult, decode_json
from pulse_omega.llm.oracle import ChatModelOracle, ReasoningOracle, ask_oracle, build_chat_model

__all__ = [
    'DecodeResult',
    'decode_json',
    'ChatModelOracle',
    'ReasoningOracle',
    'ask_oracle',
    'build_chat_model',
]
