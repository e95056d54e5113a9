"""
Onboarding API Application Factory
"""

from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware

from .auth import OnboardingSystem, get_onboarding_system
from .onboarding import router as onboarding_router
from .. import __version__


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Bank Onboarding API",
        description="Profile, account and card provisioning for new banking customers",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(onboarding_router, prefix="/identities", tags=["Onboarding"])

    # Health check endpoint
    @app.get("/health")
    def health_check(system: OnboardingSystem = Depends(get_onboarding_system)):
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "bank_onboarding_api",
            "version": __version__,
            "banking_service": "reachable" if system.health_check() else "unreachable"
        }

    return app
