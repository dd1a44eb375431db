"""Agent layer: chat client, gateway, prompts, tools, and orchestration."""
