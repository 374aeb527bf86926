"""Core: paths, secrets, flags, errors, LLM client, plan arithmetic, order log."""
