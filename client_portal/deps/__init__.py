"""Request dependencies: session/JWT auth, company scoping and remote clients."""
