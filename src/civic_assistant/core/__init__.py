"""Conversation core: session store, flows, dialogue state machine, orchestrator."""
