"""
Tests Package - Unit and integration tests for Library RAG.
===========================================================

Test modules:
- test_ingestion: Chunk splitter and document ingestor tests
- test_indexing: Chroma vector store and catalog tests
- test_rag: Filter, classifier, cascade, context, gate, generator, router tests
- test_streaming: Stream channel, reasoning splitter and streaming router tests
- test_shared: Logging helper tests

Run tests with:
    pytest tests/
    pytest tests/ -v -m "not integration"
"""
