"""Front ends that own conversation history and call the agent loop."""
