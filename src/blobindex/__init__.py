"""blobindex: a reconciled metadata index over an external blob store."""
