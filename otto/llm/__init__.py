from otto.llm.ollama import ChatOllama

__all__ = ['ChatOllama']
