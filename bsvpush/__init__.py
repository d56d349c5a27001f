"""bsvpush command line application."""
