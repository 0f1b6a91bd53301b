"""roomchat: real-time chat backend."""
