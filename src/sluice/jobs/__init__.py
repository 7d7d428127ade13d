"""Built-in import jobs. Importing a job module registers it."""
