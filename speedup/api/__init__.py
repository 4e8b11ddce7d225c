"""HTTP API exposing the speed-up job state machine."""
