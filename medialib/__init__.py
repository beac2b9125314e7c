"""Media library: virtual folders over a flat object store."""
