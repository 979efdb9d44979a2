"""Storage node updater for the ipfspodcasting.net network."""
