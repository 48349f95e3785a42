"""IR layer of the xyntra tensor compiler: graph model and validator.

    from xyntra import Graph, OpKind, validate_graph

    g = Graph()
    a = g.add_node(Custom("Input"), [], [])
    b = g.add_node(Custom("Input"), [], [])
    g.add_node(OpKind.MATMUL, [a, b], [])
    assert validate_graph(g) == []

Importing a PyTorch module needs the optional torch dependency:
    from xyntra.importer import import_module
"""

from .config import Backend, CompilerConfig  # noqa: F401
from .errors import (  # noqa: F401
    CyclicGraph,
    IncompatibleShapes,
    InternalError,
    InvalidConfigValue,
    InvalidFilePath,
    InvalidFormat,
    InvalidGPUParameter,
    InvalidNodeConnection,
    InvalidOpInputCount,
    InvalidTensorShape,
    MissingNode,
    MissingRequiredField,
    ParsingError,
    UnsupportedOperation,
    ValidationError,
    XyntraError,
)
from .ir import Custom, Graph, Node, NodeID, Op, OpKind, TensorShape, op_name  # noqa: F401
from .ops import OP_CATALOG, OpSpec, arity, infer_shapes  # noqa: F401
from .validation import (  # noqa: F401
    GraphValidator,
    Phase,
    ValidationFailed,
    combine_results,
    validate_graph,
)

__version__ = "0.1.0"
