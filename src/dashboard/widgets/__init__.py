"""Dashboard widgets and modal dialogs."""
