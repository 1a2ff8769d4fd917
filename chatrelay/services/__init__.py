"""External collaborators: chat session client, business backend, QR rendering."""
