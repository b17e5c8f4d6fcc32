"""
Filesystem Built-in Tools

Workspace-confined file access exposed as local tools:

    fs_listFiles   list a directory              (safe)
    fs_readFile    read a UTF-8 text file        (safe, 1 MiB cap)
    fs_writeFile   create or overwrite a file    (requires confirmation)

Every path is resolved against the workspace root, symlinks included, and
rejected when it lands outside it.
"""

import asyncio
from pathlib import Path
from typing import Any

from .registry import LocalToolRegistry


MAX_READ_BYTES = 1024 * 1024


class PathOutsideWorkspace(PermissionError):
    pass


class WorkspaceFiles:
    def __init__(self, root: Path) -> None:
        self.root = root.resolve()

    def resolve(self, path: str) -> Path:
        candidate = (self.root / path).resolve()
        if not candidate.is_relative_to(self.root):
            raise PathOutsideWorkspace(f"Access denied: {path} is outside the workspace root")
        return candidate

    async def list_files(self, args: dict[str, Any]) -> dict[str, Any]:
        """List the entries of a directory inside the workspace."""
        path = args.get("path") or "."
        directory = self.resolve(path)

        def scan() -> list[dict[str, Any]]:
            entries = []
            for entry in sorted(directory.iterdir(), key=lambda p: p.name):
                item: dict[str, Any] = {
                    "name": entry.name,
                    "type": "directory" if entry.is_dir() else "file",
                }
                if entry.is_file():
                    item["size"] = entry.stat().st_size
                entries.append(item)
            return entries

        return {"path": path, "files": await asyncio.to_thread(scan)}

    async def read_file(self, args: dict[str, Any]) -> dict[str, Any]:
        """Read a UTF-8 text file inside the workspace."""
        path = args["path"]
        target = self.resolve(path)
        if not target.is_file():
            raise FileNotFoundError(f"Path is not a file: {path}")
        size = target.stat().st_size
        if size > MAX_READ_BYTES:
            raise ValueError(f"File too large: {size} bytes (max: {MAX_READ_BYTES} bytes)")
        content = await asyncio.to_thread(target.read_text, encoding="utf-8")
        return {"path": path, "content": content, "size": size}

    async def write_file(self, args: dict[str, Any]) -> dict[str, Any]:
        """Create or overwrite a UTF-8 text file inside the workspace."""
        path = args["path"]
        content = args["content"]
        target = self.resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        await asyncio.to_thread(target.write_text, content, encoding="utf-8")
        return {"path": path, "bytesWritten": len(content.encode("utf-8"))}


def register_fs_tools(registry: LocalToolRegistry, root: Path) -> WorkspaceFiles:
    files = WorkspaceFiles(root)
    registry.register(
        "fs_listFiles",
        files.list_files,
        input_schema={
            "type": "object",
            "properties": {"path": {"type": "string", "description": "Directory relative to the workspace root"}},
        },
    )
    registry.register(
        "fs_readFile",
        files.read_file,
        input_schema={
            "type": "object",
            "properties": {"path": {"type": "string", "description": "File relative to the workspace root"}},
            "required": ["path"],
        },
    )
    registry.register(
        "fs_writeFile",
        files.write_file,
        input_schema={
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "File relative to the workspace root"},
                "content": {"type": "string", "description": "Full new file content"},
            },
            "required": ["path", "content"],
            "additionalProperties": False,
        },
    )
    return files
