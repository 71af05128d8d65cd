"""Transport layer - gRPC handlers, interceptors and the metrics endpoint."""
