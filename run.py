# ==============================================================================
# run.py
# ------------------------------------------------------------------------------
# The main entry point to launch the Flask application.
# ==============================================================================

from commission_admin import create_app, db
from commission_admin.models import Product, CommissionRate

# Create the Flask application instance using the factory function
app = create_app()

@app.shell_context_processor
def make_shell_context():
    """Provides a shell context for the `flask shell` command."""
    from commission_admin.matrix import MatrixEditSession, SQLCommissionStore
    return {
        'db': db,
        'Product': Product,
        'CommissionRate': CommissionRate,
        'MatrixEditSession': MatrixEditSession,
        'SQLCommissionStore': SQLCommissionStore,
    }

if __name__ == '__main__':
    app.run(debug=True)
