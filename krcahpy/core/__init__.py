"""Pipeline plumbing: configuration, I/O, logging, progress, provenance and the run orchestrator."""
