"""Core building blocks shared by the webhook and its collaborators."""
