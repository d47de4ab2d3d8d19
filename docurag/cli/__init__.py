"""Command-line interface for docurag.

    python -m docurag.cli upload notes.md --owner alice
    python -m docurag.cli status <document-id>
    python -m docurag.cli ask "What does the contract say about renewal?" --stream

Commands build the full application from settings (``config/config.yaml``
plus environment), so they use the same stores as any other entry point.
Heavy imports are deferred until a command actually runs.
"""
