"""Church outreach record keeper: contacts, follow-up tasks, digests and sync bundles."""
