"""
Contact matcher services package.

Name splitting, the known first names cache, the get-or-create contact
directory and the resolver that ties them together.
"""
