"""Transport framing, JSON-RPC envelopes and the tool catalogue."""
