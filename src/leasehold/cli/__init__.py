"""leasehold command line interface."""
