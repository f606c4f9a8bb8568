"""Extension functions importable by ``module:function`` path in tests."""


def double_it(data, source, target):
    data[target] = data[source] * 2


def explode(data, **parameters):
    raise RuntimeError("transform exploded")


class Namespaced:
    @staticmethod
    def tag(data, value="tagged"):
        data["tag"] = value
