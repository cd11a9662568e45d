"""Teen online-safety regulation tracker: crawl, classify, reconcile, persist."""
