from .tool_store import InMemoryToolStore, JsonFileToolStore, ToolStore

__all__ = ["InMemoryToolStore", "JsonFileToolStore", "ToolStore"]
