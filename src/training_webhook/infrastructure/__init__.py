"""Infrastructure implementations of the webhook collaborators."""
