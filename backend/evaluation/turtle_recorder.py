"""Recording stand-in for the standard ``turtle`` module.

Harness programs install this module as ``sys.modules["turtle"]`` before the
student's code runs. Nothing is drawn; every pen-down motion is appended to a
list of path segments, every ``begin_fill``/``end_fill`` pair to a list of
filled polygons and every ``dot`` to a list of dots. The harness prints all
three once the program has finished.

Coordinates follow the real turtle module: origin in the centre, y pointing
up, heading 0 facing east and increasing counter-clockwise.
"""

import math

_segments = []
_fills = []
_dots = []
_screen_state = {"bgcolor": "white", "colormode": 1.0, "width": 400, "height": 300}
_default_turtle = None


def _without_owner(items):
    return [{key: value for key, value in item.items() if key != "owner"} for item in items]


def recorded_segments():
    return _without_owner(_segments)


def recorded_fills():
    return _without_owner(_fills)


def recorded_dots():
    return _without_owner(_dots)


def background_color():
    return _screen_state["bgcolor"]


def configure_canvas(width, height):
    _screen_state["width"] = int(width)
    _screen_state["height"] = int(height)


def _color_string(args):
    if len(args) == 1:
        args = args[0]
    if isinstance(args, str):
        return args
    if isinstance(args, (tuple, list)) and len(args) == 3:
        scale = 255.0 / _screen_state["colormode"]
        r, g, b = (max(0, min(255, int(round(c * scale)))) for c in args)
        return "#%02x%02x%02x" % (r, g, b)
    raise ValueError("bad color arguments: %r" % (args,))


def _clean(value):
    value = round(value, 6)
    return 0.0 if value == 0 else value


class Turtle:
    def __init__(self, shape="classic", undobuffersize=1000, visible=True):
        self._x = 0.0
        self._y = 0.0
        self._heading = 0.0
        self._pen_down = True
        self._pen_color = "black"
        self._fill_color = "black"
        self._pen_size = 1.0
        self._visible = visible
        self._shape = shape
        self._fill_path = None  # vertices since begin_fill

    # -- motion ---------------------------------------------------------

    def _move_to(self, x, y):
        x, y = float(x), float(y)
        dx, dy = x - self._x, y - self._y
        length = math.hypot(dx, dy)
        if self._pen_down and length > 1e-9:
            _segments.append({
                "start": [_clean(self._x), _clean(self._y)],
                "end": [_clean(x), _clean(y)],
                "length": _clean(length),
                "angle": _clean(math.degrees(math.atan2(dy, dx))) % 360.0,
                "color": self._pen_color,
                "width": float(self._pen_size),
                "owner": id(self),
            })
        if self._fill_path is not None and length > 1e-9:
            self._fill_path.append([_clean(x), _clean(y)])
        self._x, self._y = x, y

    def forward(self, distance):
        radians = math.radians(self._heading)
        self._move_to(self._x + distance * math.cos(radians), self._y + distance * math.sin(radians))

    fd = forward

    def backward(self, distance):
        self.forward(-distance)

    bk = back = backward

    def left(self, angle):
        self._heading = (self._heading + angle) % 360.0

    lt = left

    def right(self, angle):
        self.left(-angle)

    rt = right

    def setheading(self, to_angle):
        self._heading = to_angle % 360.0

    seth = setheading

    def goto(self, x, y=None):
        if y is None:
            x, y = x
        self._move_to(x, y)

    setpos = setposition = goto

    def setx(self, x):
        self._move_to(x, self._y)

    def sety(self, y):
        self._move_to(self._x, y)

    def home(self):
        self._move_to(0.0, 0.0)
        self._heading = 0.0

    def circle(self, radius, extent=None, steps=None):
        # Same polygon approximation the real turtle module uses.
        if extent is None:
            extent = 360.0
        if steps is None:
            frac = abs(extent) / 360.0
            steps = 1 + int(min(11 + abs(radius) / 6.0, 59.0) * frac)
        w = extent / steps
        w2 = 0.5 * w
        length = 2.0 * radius * math.sin(math.radians(w2))
        if radius < 0:
            length, w, w2 = -length, -w, -w2
        self.left(w2)
        for _ in range(steps):
            self.forward(length)
            self.left(w)
        self.left(-w2)

    def position(self):
        return (self._x, self._y)

    pos = position

    def xcor(self):
        return self._x

    def ycor(self):
        return self._y

    def heading(self):
        return self._heading

    def distance(self, x, y=None):
        if y is None:
            x, y = x
        return math.hypot(x - self._x, y - self._y)

    # -- pen ------------------------------------------------------------

    def penup(self):
        self._pen_down = False

    pu = up = penup

    def pendown(self):
        self._pen_down = True

    pd = down = pendown

    def isdown(self):
        return self._pen_down

    def pencolor(self, *args):
        if not args:
            return self._pen_color
        self._pen_color = _color_string(args)

    def fillcolor(self, *args):
        if not args:
            return self._fill_color
        self._fill_color = _color_string(args)

    def color(self, *args):
        if not args:
            return self._pen_color, self._fill_color
        if len(args) == 2:
            self.pencolor(args[0])
            self.fillcolor(args[1])
        else:
            self.pencolor(*args)
            self.fillcolor(*args)

    def pensize(self, width=None):
        if width is None:
            return self._pen_size
        self._pen_size = width

    width = pensize

    def clear(self):
        for items in (_segments, _fills, _dots):
            items[:] = [item for item in items if item["owner"] != id(self)]

    def reset(self):
        self.clear()
        self._x = self._y = self._heading = 0.0
        self._pen_down = True
        self._pen_color = self._fill_color = "black"
        self._pen_size = 1.0
        self._fill_path = None

    # -- appearance and no-ops -----------------------------------------

    def speed(self, speed=None):
        return 0 if speed is None else None

    def hideturtle(self):
        self._visible = False

    ht = hideturtle

    def showturtle(self):
        self._visible = True

    st = showturtle

    def isvisible(self):
        return self._visible

    def shape(self, name=None):
        if name is None:
            return self._shape
        self._shape = name

    def filling(self):
        return self._fill_path is not None

    def begin_fill(self):
        self._fill_path = [[_clean(self._x), _clean(self._y)]]

    def end_fill(self):
        path, self._fill_path = self._fill_path, None
        if path is not None and len(path) >= 3:
            _fills.append({"points": path, "color": self._fill_color, "owner": id(self)})

    def write(self, arg, move=False, align="left", font=("Arial", 8, "normal")):
        pass

    def dot(self, size=None, *color):
        if not color and isinstance(size, (str, tuple)):
            color, size = (size,), None
        if size is None:
            size = max(self._pen_size + 4, 2 * self._pen_size)
        _dots.append({
            "center": [_clean(self._x), _clean(self._y)],
            "size": float(size),
            "color": _color_string(color) if color else self._pen_color,
            "owner": id(self),
        })

    def stamp(self):
        return 0


Pen = RawTurtle = Turtle


class _Screen:
    def bgcolor(self, *args):
        if not args:
            return _screen_state["bgcolor"]
        _screen_state["bgcolor"] = _color_string(args)

    def colormode(self, cmode=None):
        if cmode is None:
            return _screen_state["colormode"]
        _screen_state["colormode"] = float(cmode)

    def setup(self, width=None, height=None, startx=None, starty=None):
        pass

    def screensize(self, canvwidth=None, canvheight=None, bg=None):
        if bg is not None:
            self.bgcolor(bg)

    def window_width(self):
        return _screen_state["width"]

    def window_height(self):
        return _screen_state["height"]

    def title(self, titlestring):
        pass

    def tracer(self, n=None, delay=None):
        pass

    def update(self):
        pass

    def mainloop(self):
        pass

    done = exitonclick = bye = mainloop


_screen = _Screen()


def Screen():
    return _screen


def _get_default_turtle():
    global _default_turtle
    if _default_turtle is None:
        _default_turtle = Turtle()
    return _default_turtle


_TURTLE_FUNCTIONS = [
    "forward", "fd", "backward", "bk", "back", "left", "lt", "right", "rt",
    "setheading", "seth", "goto", "setpos", "setposition", "setx", "sety",
    "home", "circle", "position", "pos", "xcor", "ycor", "heading", "distance",
    "penup", "pu", "up", "pendown", "pd", "down", "isdown", "pencolor",
    "fillcolor", "color", "pensize", "width", "clear", "reset", "speed",
    "hideturtle", "ht", "showturtle", "st", "isvisible", "shape",
    "filling", "begin_fill", "end_fill", "write", "dot", "stamp",
]
_SCREEN_FUNCTIONS = [
    "bgcolor", "colormode", "setup", "screensize", "window_width",
    "window_height", "title", "tracer",
    "update", "mainloop", "done", "exitonclick", "bye",
]


def _turtle_delegate(name):
    def delegate(*args, **kwargs):
        return getattr(_get_default_turtle(), name)(*args, **kwargs)
    delegate.__name__ = name
    return delegate


def _screen_delegate(name):
    def delegate(*args, **kwargs):
        return getattr(_screen, name)(*args, **kwargs)
    delegate.__name__ = name
    return delegate


for _name in _TURTLE_FUNCTIONS:
    globals()[_name] = _turtle_delegate(_name)
for _name in _SCREEN_FUNCTIONS:
    globals()[_name] = _screen_delegate(_name)

__all__ = ["Turtle", "Pen", "RawTurtle", "Screen"] + _TURTLE_FUNCTIONS + _SCREEN_FUNCTIONS
