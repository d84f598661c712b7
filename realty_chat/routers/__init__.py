"""HTTP routers mounted by :mod:`realty_chat.main`."""
