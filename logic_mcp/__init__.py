"""SWI-Prolog reasoning tools served over the Model Context Protocol."""
