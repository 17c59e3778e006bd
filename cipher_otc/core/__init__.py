"""CipherOTC core: configuration, events, ledgers and the auction engine."""
