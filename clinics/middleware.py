class DeprecatedEndpointMiddleware:
    """Mark responses of deprecated read endpoints with ``Deprecation``/``Link`` headers."""
    # deprecated path -> successor
    DEPRECATED_ENDPOINTS = {
        '/api/patients': '/api/customers/analysis',
    }

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        response = self.get_response(request)
        successor = self.DEPRECATED_ENDPOINTS.get(request.path)
        if successor and request.method == 'GET':
            response['Deprecation'] = 'true'
            response['Link'] = f'<{successor}>; rel="successor-version"'
        return response
