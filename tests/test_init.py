import pytest


def test_lazy_imports_and_caching():
    import autogit

    session_cls = autogit.WatchSession
    from autogit.core import WatchSession

    assert session_cls is WatchSession
    assert autogit.WatchSession is WatchSession
    assert autogit.__version__


def test_unknown_attribute_raises():
    import autogit

    with pytest.raises(AttributeError):
        getattr(autogit, "TotallyUnknownSymbol")
