"""
Theurgy - Command implementations for the GrowStreams toolkit.

Each module corresponds to a top-level CLI command:
- deploy: Upload, wire and seed the programs
- send:   Sign and send one message
- query:  Read-only program query

catalog and orchestrator hold the program list and the deploy pipeline.
"""
