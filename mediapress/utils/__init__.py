"""Small helpers shared by the pipeline, the CLI and the logs."""
