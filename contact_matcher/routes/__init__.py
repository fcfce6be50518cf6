"""
Contact matcher API routes package.

    from contact_matcher.routes import contacts, resolve, first_names

    app.include_router(contacts.router)
"""
