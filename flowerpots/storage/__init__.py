"""Object storage for uploaded images and the upload pipeline."""
