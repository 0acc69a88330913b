# Documents persisted in the remote document store
