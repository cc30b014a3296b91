"""Version-control collaborator: git checkout, commit, push, URLs and TLS transport."""
