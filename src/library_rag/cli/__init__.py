"""
CLI Module - Command-line interface for Library RAG.
====================================================

Provides CLI commands for:
- Indexing plain-text documents
- Asking questions (single-shot or streamed)
- Removing documents from the index
- Showing configuration and index status

Usage:
    library-rag --help
    library-rag index docs/mysql_manual.txt --category database
    library-rag ask "MySQL的默认端口是多少？"
    library-rag stream "什么是数据库索引？" --sse
"""

from library_rag.cli.main import app, cli

__all__ = ["app", "cli"]
